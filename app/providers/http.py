# app/providers/http.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger("bondfyr.http")


@dataclass
class HttpResponse:
    status_code: int
    json: Optional[dict[str, Any]]
    text: str


class HttpClient:
    def __init__(self, timeout_s: float = 20.0, follow_redirects: bool = True, transport: httpx.BaseTransport | None = None):
        self._client = httpx.Client(timeout=timeout_s, follow_redirects=follow_redirects, transport=transport)

    def post(
        self,
        url: str,
        *,
        headers: dict[str, str],
        json_body: dict[str, Any] | None = None,
    ) -> HttpResponse:
        r = self._client.post(url, headers=headers, json=json_body)
        logger.debug("POST %s -> status=%s", url, r.status_code)
        return self._wrap(r)

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _wrap(r: httpx.Response) -> HttpResponse:
        try:
            payload = r.json()
        except ValueError:
            payload = None
        return HttpResponse(status_code=r.status_code, json=payload, text=r.text)


def is_retryable_http(code: int) -> bool:
    # Retry transient / throttling / gateway issues
    return code in (408, 425, 429, 500, 502, 503, 504)
