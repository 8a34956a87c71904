# app/store/factory.py
from __future__ import annotations

from app.store.base import DocumentStore
from app.store.memory import MemoryDocumentStore
from settings import Settings


def build_store(settings: Settings) -> DocumentStore:
    backend = (settings.STORE_BACKEND or "").strip().lower()
    if backend == "memory":
        return MemoryDocumentStore()
    if backend == "postgres":
        from app.store.postgres import PostgresDocumentStore
        from db import Database

        return PostgresDocumentStore(
            Database.from_settings(settings),
            retry_attempts=settings.STORE_RETRY_ATTEMPTS,
            retry_base_delay_s=settings.STORE_RETRY_BASE_DELAY_S,
        )
    raise ValueError(f"Unsupported STORE_BACKEND: {settings.STORE_BACKEND}")
