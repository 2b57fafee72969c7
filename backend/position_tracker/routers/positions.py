# backend/position_tracker/routers/positions.py
"""
Position endpoints.

- GET /positions - Daily position snapshots of the caller's holdings

The caller is identified by the X-User-Id header. Dates accept ISO 8601
or Unix timestamps (seconds) and are reduced to UTC calendar days.
"""

import asyncio
import logging
import threading
from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from position_tracker.config import settings
from position_tracker.database import get_db
from position_tracker.dependencies import get_current_user_id, get_position_service
from position_tracker.middleware.rate_limit import limiter
from position_tracker.schemas.positions import (
    PositionSnapshotSchema,
    PositionsResponse,
    QuoteSchema,
)
from position_tracker.services.exceptions import ValidationError
from position_tracker.services.positions.service import PositionService
from position_tracker.services.positions.types import PositionSnapshot, QuoteMeta
from position_tracker.utils.date_utils import parse_flexible_date, to_utc_date

logger = logging.getLogger(__name__)

# How often a running request checks whether the client went away
DISCONNECT_POLL_SECONDS = 0.5

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(
    prefix="/positions",
    tags=["Positions"],
)


# =============================================================================
# MAPPER FUNCTIONS (Internal Types -> Pydantic Schemas)
# =============================================================================

def _map_snapshot(snapshot: PositionSnapshot) -> PositionSnapshotSchema:
    return PositionSnapshotSchema(
        user_id=snapshot.user_id,
        quote_id=snapshot.quote_id,
        date=snapshot.date,
        currency=snapshot.currency,
        amount=snapshot.amount,
        invested=snapshot.invested,
        total_fees=snapshot.total_fees,
        market_price_per_unit=snapshot.market_price_per_unit,
        realized_gain=snapshot.realized_gain,
        total_invested_cash=snapshot.total_invested_cash,
        current_value=snapshot.current_value,
        unrealized_gain=snapshot.unrealized_gain,
        total_profit=snapshot.total_profit,
    )


def _map_quote(quote: QuoteMeta) -> QuoteSchema:
    return QuoteSchema.model_validate(quote)


def _parse_date_param(value: str | None, name: str) -> date | None:
    """Parse an ISO 8601 / Unix timestamp query value into a UTC day."""
    if value is None:
        return None
    try:
        return to_utc_date(parse_flexible_date(value))
    except ValueError as e:
        raise ValidationError(str(e), field=name) from e


async def _cancel_on_disconnect(request: Request, cancel_event: threading.Event) -> None:
    """Set cancel_event when the client disconnects."""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected, cancelling position calculation")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get(
    "",
    response_model=PositionsResponse,
    summary="Get position snapshots",
    response_description="Daily snapshots of every holding plus instrument metadata",
)
@limiter.limit(settings.rate_limit_positions)
async def get_positions(
        request: Request,  # Required for rate limiting
        from_value: str | None = Query(
            default=None,
            alias="from",
            description="First day (ISO 8601 or Unix seconds, default: no lower bound)",
        ),
        to_value: str | None = Query(
            default=None,
            alias="to",
            description="Last day (ISO 8601 or Unix seconds, default: today UTC)",
        ),
        user_id: str = Depends(get_current_user_id),
        db: Session = Depends(get_db),
        service: PositionService = Depends(get_position_service),
) -> PositionsResponse:
    """
    Get daily position snapshots for the caller's investments.

    For every instrument the caller has traded, returns one snapshot per
    calendar day within **from**..**to** (inclusive), starting on the first
    day a price is known. Days without a price carry the last close forward.

    Each snapshot contains:
    - **amount**: Units held
    - **invested**: FIFO cost basis of the units held (fees included)
    - **realized_gain**: Sell gains plus dividends
    - **current_value / unrealized_gain / total_profit**: Derived at the day's price

    Missing price history is fetched from the market data provider first.

    Raises **400** if a date cannot be parsed or **from** is after **to**.
    Raises **401** without an X-User-Id header.
    """
    from_date = _parse_date_param(from_value, "from")
    to_date = _parse_date_param(to_value, "to")

    cancel_event = threading.Event()
    watcher = asyncio.create_task(_cancel_on_disconnect(request, cancel_event))

    try:
        # Domain exceptions propagate to the global handlers
        result = await run_in_threadpool(
            service.get_positions,
            db,
            user_id,
            from_date,
            to_date,
            cancel_event,
        )
    finally:
        watcher.cancel()

    return PositionsResponse(
        snapshots=[_map_snapshot(s) for s in result.snapshots],
        quotes=[_map_quote(q) for q in result.quotes],
        warnings=result.warnings,
    )
