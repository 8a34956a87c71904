from __future__ import annotations

from contextlib import contextmanager

import psycopg2
import psycopg2.extras
from psycopg2.pool import ThreadedConnectionPool

from settings import Settings


class Database:
    """
    Owns one PostgreSQL connection pool.
    Built once at app startup and handed to whatever needs a connection.
    """

    def __init__(self, dsn: str, *, minconn: int = 1, maxconn: int = 10, statement_timeout_ms: int = 5000):
        if not dsn:
            raise RuntimeError("DATABASE_URL is not set.")
        self.dsn = dsn
        self.minconn = minconn
        self.maxconn = maxconn
        self.statement_timeout_ms = statement_timeout_ms
        self._pool: ThreadedConnectionPool | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.DATABASE_URL,
            minconn=settings.DB_POOL_MIN,
            maxconn=settings.DB_POOL_MAX,
            statement_timeout_ms=settings.DB_STATEMENT_TIMEOUT_MS,
        )

    def init_pool(self) -> None:
        """
        Initialize the PostgreSQL connection pool.
        """
        psycopg2.extras.register_uuid()
        if self._pool is None:
            self._pool = ThreadedConnectionPool(
                minconn=self.minconn,
                maxconn=self.maxconn,
                dsn=self.dsn,
                connect_timeout=5,
            )

    def close_pool(self) -> None:
        """
        Gracefully close all pooled connections.
        """
        if self._pool:
            self._pool.closeall()
            self._pool = None

    @contextmanager
    def get_conn(self):
        """
        Provides a transactional DB connection.
        Auto-commits on success, rolls back on error.
        """
        if self._pool is None:
            self.init_pool()

        conn = self._pool.getconn()

        try:
            # Safety: never allow long-running queries or held row locks
            with conn.cursor() as cur:
                cur.execute("SET statement_timeout = %s;", (f"{int(self.statement_timeout_ms)}ms",))
                cur.execute("SET lock_timeout = %s;", (f"{int(self.statement_timeout_ms)}ms",))
                cur.execute("SET idle_in_transaction_session_timeout = %s;", (f"{int(self.statement_timeout_ms)}ms",))
                cur.execute("SET application_name = 'bondfyr_api';")

            yield conn
            conn.commit()

        except Exception:
            conn.rollback()
            raise

        finally:
            self._pool.putconn(conn)
