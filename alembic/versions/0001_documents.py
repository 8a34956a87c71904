"""documents table

Revision ID: 0001_documents
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_documents"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS app;")
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.documents (
          collection text NOT NULL,
          id text NOT NULL,
          doc jsonb NOT NULL,
          version integer NOT NULL DEFAULT 1,
          created_at timestamptz NOT NULL DEFAULT now(),
          updated_at timestamptz NOT NULL DEFAULT now(),
          PRIMARY KEY (collection, id)
        );
        """
    )
    # containment lookups: guest request by payment_id, payouts by transfer_id
    op.execute(
        "CREATE INDEX IF NOT EXISTS documents_doc_gin_idx ON app.documents USING gin (doc jsonb_path_ops);"
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS documents_pending_earnings_idx
        ON app.documents (((doc->>'pending_earnings_cents')::numeric))
        WHERE collection = 'host_earnings';
        """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS app.documents;")
