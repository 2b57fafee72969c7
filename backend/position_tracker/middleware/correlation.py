# backend/position_tracker/middleware/correlation.py
"""
Correlation ID middleware.

Each request gets an ID, taken from the first usable header of
X-Correlation-ID, X-Request-ID, or freshly generated. It is bound to the
logging context for the request and echoed as X-Correlation-ID. One
access log line per request records method, path, status and duration.

Client Usage:
    curl -H "X-Correlation-ID: my-trace-123" -H "X-User-Id: u-1" \\
        "http://localhost:8000/positions?from=2024-02-10"
"""

import logging
import re
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from position_tracker.utils.context import correlation_scope

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

# Header values outside this pattern are replaced, so they never reach log lines
_VALID_ID = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def resolve_correlation_id(request: Request) -> str:
    """Return the first well-formed incoming ID, or a new UUID4."""
    for header in (CORRELATION_ID_HEADER, REQUEST_ID_HEADER):
        value = request.headers.get(header)
        if value and _VALID_ID.match(value):
            return value
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a correlation ID to every request and logs its outcome."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        with correlation_scope(resolve_correlation_id(request)) as correlation_id:
            started = time.perf_counter()
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000

            response.headers[CORRELATION_ID_HEADER] = correlation_id
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"({elapsed_ms:.1f} ms)"
            )
            return response
