import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from services.metrics import increment_http_requests
from services.observability import correlation_scope

REQUEST_ID_HEADER = "X-Request-Id"

logger = logging.getLogger("bondfyr.http")


def _route_label(request: Request) -> str:
    # templated path keeps metric cardinality bounded (/v1/parties/{party_id})
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Request id propagation, request metrics and one access-log line per request."""

    async def dispatch(self, request: Request, call_next):
        incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()[:128]

        with correlation_scope(incoming or None, prefix="req_") as req_id:
            request.state.request_id = req_id
            start = time.perf_counter()
            status = 500
            try:
                response = await call_next(request)
                status = response.status_code
                response.headers[REQUEST_ID_HEADER] = req_id
                return response
            finally:
                duration_ms = int((time.perf_counter() - start) * 1000)
                increment_http_requests(_route_label(request), status)

                # no headers or bodies: they carry tokens and webhook signatures
                logger.info(
                    "http_request method=%s path=%s status=%s duration_ms=%s client=%s",
                    request.method,
                    request.url.path,
                    status,
                    duration_ms,
                    request.client.host if request.client else None,
                )
