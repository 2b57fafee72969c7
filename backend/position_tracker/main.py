# backend/position_tracker/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application
- Maps service exceptions to HTTP responses
- Registers the positions router and the health check

Run locally:
    uvicorn position_tracker.main:app --reload --app-dir backend
"""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from position_tracker import __version__
from position_tracker.config import settings
from position_tracker.database import check_database_health
from position_tracker.middleware import (
    CorrelationIdMiddleware,
    limiter,
    rate_limit_exceeded_handler,
)
from position_tracker.routers import positions_router
from position_tracker.schemas.errors import ErrorDetail
from position_tracker.services.exceptions import (
    ServiceError,
    ValidationError,
    InvalidDateRangeError,
    QuoteNotFoundError,
    MarketDataError,
    ProviderUnavailableError,
    TickerNotFoundError,
    RateLimitError,
    BackfillCancelledError,
    BackfillTimeoutError,
    OversellError,
)
from position_tracker.utils import setup_logging

logger = logging.getLogger(__name__)

setup_logging()

app = FastAPI(
    title=settings.app_name,
    description="Daily FIFO position snapshots for investment ledgers",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# slowapi reads the limiter from app state
app.state.limiter = limiter

app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# Starlette picks the handler of the most specific matching class, so the
# ServiceError handler only sees errors without a dedicated one.
# =============================================================================

def _error_response(
        status_code: int,
        exc: Exception,
        details: dict | None = None,
        error: str | None = None,
) -> JSONResponse:
    """Render ``exc`` as an ErrorDetail body named after its class."""
    body = ErrorDetail(
        error=error or type(exc).__name__,
        message=str(exc),
        details=details,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(InvalidDateRangeError)
async def invalid_date_range_handler(request: Request, exc: InvalidDateRangeError) -> JSONResponse:
    logger.warning(f"Rejected range {exc.from_date}..{exc.to_date}")
    return _error_response(
        400, exc, {"from": exc.from_date.isoformat(), "to": exc.to_date.isoformat()},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Unparseable query values (400); ``details.field`` names the parameter."""
    logger.warning(f"Validation error: {exc}")
    return _error_response(
        400, exc, {"field": exc.field} if exc.field else None, error="ValidationError",
    )


@app.exception_handler(QuoteNotFoundError)
async def quote_not_found_handler(request: Request, exc: QuoteNotFoundError) -> JSONResponse:
    """An investment references a quote that no longer exists (404)."""
    logger.warning(f"Quote not found: {exc.quote_id}")
    return _error_response(404, exc, {"quote_id": exc.quote_id})


@app.exception_handler(OversellError)
async def oversell_handler(request: Request, exc: OversellError) -> JSONResponse:
    """
    Ledger sells more than it holds and the policy is "reject" (422).

    Amounts are sent as strings to keep Decimal precision.
    """
    logger.warning(f"Oversell rejected: {exc}")
    return _error_response(422, exc, {
        "quote_id": exc.quote_id,
        "date": exc.date.isoformat(),
        "requested": str(exc.requested),
        "held": str(exc.held),
    })


@app.exception_handler(BackfillTimeoutError)
async def backfill_timeout_handler(request: Request, exc: BackfillTimeoutError) -> JSONResponse:
    logger.error(f"Backfill timeout: {exc}")
    return _error_response(504, exc, {"timeout": exc.timeout, "pending": exc.pending})


@app.exception_handler(BackfillCancelledError)
async def backfill_cancelled_handler(request: Request, exc: BackfillCancelledError) -> JSONResponse:
    """Cancelled backfill (503); usually nobody is listening any more."""
    logger.info(f"Backfill cancelled: {exc}")
    return _error_response(503, exc, {"pending": exc.pending})


@app.exception_handler(TickerNotFoundError)
async def ticker_not_found_handler(request: Request, exc: TickerNotFoundError) -> JSONResponse:
    logger.warning(f"Symbol not found on provider: {exc.symbol}")
    return _error_response(404, exc, {"symbol": exc.symbol})


@app.exception_handler(ProviderUnavailableError)
async def provider_unavailable_handler(request: Request, exc: ProviderUnavailableError) -> JSONResponse:
    logger.error(f"Provider unavailable: {exc}")
    return _error_response(503, exc)


@app.exception_handler(RateLimitError)
async def provider_rate_limit_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    """Upstream provider throttled us (429), not to be confused with our own limiter."""
    logger.warning(f"Provider rate limit: {exc}")
    return _error_response(429, exc, {"retry_after": exc.retry_after} if exc.retry_after else None)


@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError) -> JSONResponse:
    logger.error(f"Market data error: {exc}")
    return _error_response(502, exc, {"provider": exc.provider} if exc.provider else None, error="MarketDataError")


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    logger.error(f"Unhandled service error {type(exc).__name__}: {exc}")
    return _error_response(500, exc, error="ServiceError")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPExceptions (e.g. missing X-User-Id) in the ErrorDetail format."""
    body = ErrorDetail(error="HTTPException", message=str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """FastAPI's own 422, reshaped into ErrorDetail."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    body = ErrorDetail(
        error="ValidationError",
        message="Request validation failed",
        details={"errors": errors},
    )
    return JSONResponse(status_code=422, content=body.model_dump())


app.include_router(positions_router)  # /positions


@app.get("/health", tags=["Health"])
def health_check():
    """
    Report database connectivity.

    Returns **503** when the database is unreachable so load balancers
    take the instance out of rotation.
    """
    db_health = check_database_health()
    body = {
        "status": db_health["status"],
        "app": settings.app_name,
        "version": __version__,
        "checks": {"database": db_health},
    }
    if db_health["status"] != "healthy":
        return JSONResponse(status_code=503, content=body)
    return body
