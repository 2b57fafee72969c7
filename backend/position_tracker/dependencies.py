# backend/position_tracker/dependencies.py
"""
Dependency injection module for FastAPI services.

Singleton service instances shared across all requests, lazily created on
first use to avoid import-time side effects.

Usage in routers:
    from position_tracker.dependencies import get_position_service, get_current_user_id

    @router.get("/positions")
    def get_positions(
        user_id: str = Depends(get_current_user_id),
        service: PositionService = Depends(get_position_service),
    ):
        ...
"""

import logging
from functools import lru_cache

from fastapi import Header, HTTPException, status

from position_tracker.config import settings
from position_tracker.database import SessionLocal
from position_tracker.services.market_data.backfill import BackfillCoordinator
from position_tracker.services.market_data.base import ProviderRegistry
from position_tracker.services.market_data.price_service import QuotePriceService
from position_tracker.services.market_data.yahoo import YahooFinanceProvider
from position_tracker.services.positions.assembler import SnapshotAssembler
from position_tracker.services.positions.calculators import TransactionApplier
from position_tracker.services.positions.service import PositionService
from position_tracker.services.positions.simulator import DailySimulator
from position_tracker.services.positions.types import OversellPolicy

logger = logging.getLogger(__name__)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# Order matters: define dependencies before dependents
# 1. get_provider_registry (no deps)
# 2. get_price_service (depends on registry)
# 3. get_backfill_coordinator (depends on price service)
# 4. get_position_service (depends on price service, backfill)


@lru_cache(maxsize=1)
def get_provider_registry() -> ProviderRegistry:
    """
    Get the singleton provider registry.

    Shares provider instances across requests so retries and timeouts
    are configured once.
    """
    logger.debug("Initializing singleton ProviderRegistry")
    return ProviderRegistry([
        YahooFinanceProvider(timeout=settings.provider_timeout_seconds),
    ])


@lru_cache(maxsize=1)
def get_price_service() -> QuotePriceService:
    logger.debug("Initializing singleton QuotePriceService")
    return QuotePriceService(registry=get_provider_registry())


@lru_cache(maxsize=1)
def get_backfill_coordinator() -> BackfillCoordinator:
    """
    Get the singleton backfill coordinator.

    Every fetch task opens its own session from SessionLocal.
    """
    logger.debug("Initializing singleton BackfillCoordinator")
    return BackfillCoordinator(
        price_service=get_price_service(),
        session_factory=SessionLocal,
        max_workers=settings.backfill_max_workers,
        timeout=settings.backfill_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_position_service() -> PositionService:
    logger.debug("Initializing singleton PositionService")
    applier = TransactionApplier(oversell_policy=OversellPolicy(settings.oversell_policy))
    return PositionService(
        price_service=get_price_service(),
        backfill=get_backfill_coordinator(),
        assembler=SnapshotAssembler(DailySimulator(applier)),
    )


# =============================================================================
# REQUEST DEPENDENCIES
# =============================================================================

def get_current_user_id(
        x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """
    Resolve the caller's user id from the X-User-Id header.

    Authentication happens upstream (gateway / identity proxy); this
    service only trusts the forwarded id.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id.strip()
