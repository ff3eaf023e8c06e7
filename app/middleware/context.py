"""
Request context middleware.

Every request gets an X-Request-ID (taken from the caller when it is safe,
generated otherwise). X-Correlation-ID is passed through untouched. Both
are bound into structlog for the duration of the request and echoed on the
response so a Stripe delivery attempt can be matched to our logs.
"""

import re
import time
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.context import (
    clear_context,
    generate_request_id,
    set_correlation_id,
    set_request_id,
)

logger = structlog.get_logger(__name__)

SLOW_REQUEST_MS = 500.0

# Caller-supplied ids end up in log lines; keep them short and plain
_SAFE_ID = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")


def _safe_id(value: Optional[str]) -> Optional[str]:
    if value and _SAFE_ID.match(value):
        return value
    return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _safe_id(request.headers.get("X-Request-ID")) or generate_request_id()
        correlation_id = _safe_id(request.headers.get("X-Correlation-ID"))

        set_request_id(request_id)
        if correlation_id:
            set_correlation_id(correlation_id)
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            if correlation_id:
                response.headers["X-Correlation-ID"] = correlation_id
            return response
        finally:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
            if request.url.path != "/health":
                if status_code >= 500:
                    logger.warning("Request failed", status_code=status_code, duration_ms=elapsed_ms)
                elif elapsed_ms >= SLOW_REQUEST_MS:
                    logger.warning("Slow request", status_code=status_code, duration_ms=elapsed_ms)

            clear_context()
            structlog.contextvars.clear_contextvars()
