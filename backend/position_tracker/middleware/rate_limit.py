# backend/position_tracker/middleware/rate_limit.py
"""
Rate limiting for the positions API.

A positions request can trigger market data fetches for every instrument
in the ledger, so the endpoint is limited per client to protect the
provider quota (Yahoo Finance).

Key by: Client IP address (X-Forwarded-For only from trusted proxies)
Storage: In-memory (single-instance deployments)

Usage:
    from position_tracker.middleware.rate_limit import limiter

    @router.get("/positions")
    @limiter.limit(settings.rate_limit_positions)
    def get_positions(request: Request, ...):
        ...
"""

import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse

from position_tracker.config import settings

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 60


def _is_trusted_proxy(request: Request) -> bool:
    """True if forwarded headers of this request may be trusted."""
    if settings.trust_proxy_headers:
        return True
    return get_remote_address(request) in settings.trusted_proxy_ips


def _get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Only trusts X-Forwarded-For / X-Real-IP when the immediate client is a
    trusted proxy, so clients cannot pick their own rate limit bucket.
    """
    if _is_trusted_proxy(request):
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

    return get_remote_address(request)


limiter = Limiter(
    key_func=_get_client_ip,
    enabled=not settings.is_test,
)


async def rate_limit_exceeded_handler(
        request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """
    Return 429 in the same ErrorDetail shape as other API errors.
    """
    limit_info = str(exc.detail) if exc.detail else "Rate limit exceeded"

    logger.warning(f"Rate limit exceeded for {_get_client_ip(request)}: {limit_info}")

    return JSONResponse(
        status_code=429,
        content={
            "error": "RateLimitError",
            "message": f"Too many requests. {limit_info}",
            "details": {"retry_after": RETRY_AFTER_SECONDS},
        },
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )
