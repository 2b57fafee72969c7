# backend/position_tracker/services/market_data/__init__.py
"""
Market data services package.

This package contains:
- Abstract interface for market data providers (base.py)
- Yahoo Finance implementation (yahoo.py)
- Stored price history with staleness-aware refresh (price_service.py)
- Concurrent price backfill before a positions request (backfill.py)

Usage:
    from position_tracker.services.market_data import (
        ProviderRegistry,
        YahooFinanceProvider,
        QuotePriceService,
        BackfillCoordinator,
    )

    registry = ProviderRegistry([YahooFinanceProvider()])
    prices = QuotePriceService(registry)
    backfill = BackfillCoordinator(prices, SessionLocal, max_workers=2)

Architecture:
    MarketDataProvider (ABC)
    └── YahooFinanceProvider (concrete)

    ProviderRegistry
    └── Resolves Quote.provider_id to a provider

    QuotePriceService
    └── Fetches missing ranges, upserts QuotePrice rows

    BackfillCoordinator
    └── Runs QuotePriceService.ensure_history in a bounded thread pool
"""

from position_tracker.services.market_data.base import (
    HistoricalPricesResult,
    MarketDataProvider,
    OHLCVData,
    ProviderRegistry,
)
from position_tracker.services.market_data.yahoo import YahooFinanceProvider
from position_tracker.services.market_data.price_service import QuotePriceService
from position_tracker.services.market_data.backfill import (
    BackfillCoordinator,
    BackfillRequest,
    BackfillResult,
)

__all__ = [
    # Provider interface
    "MarketDataProvider",
    "OHLCVData",
    "HistoricalPricesResult",
    "ProviderRegistry",

    # Implementations
    "YahooFinanceProvider",

    # Price storage
    "QuotePriceService",

    # Backfill
    "BackfillCoordinator",
    "BackfillRequest",
    "BackfillResult",
]
