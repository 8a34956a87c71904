# app/providers/factory.py
from __future__ import annotations

from app.providers.base import BankTransferProvider
from settings import Settings


def get_transfer_provider(settings: Settings) -> BankTransferProvider:
    mode = (settings.TRANSFER_MODE or "").strip().lower()

    if mode == "mock":
        from app.providers.mock import MockTransferProvider

        return MockTransferProvider()

    if mode == "http":
        from app.providers.bank_transfer import HttpTransferProvider

        return HttpTransferProvider(
            base_url=settings.TRANSFER_API_URL,
            api_key=settings.TRANSFER_API_KEY,
            timeout_s=settings.TRANSFER_HTTP_TIMEOUT_S,
        )

    raise ValueError(f"Unsupported TRANSFER_MODE: {settings.TRANSFER_MODE}")
