# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- Mock market data provider
- Sample data factories
"""

import os

# Settings are read at import time; test mode allows SQLite and disables rate limits
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import threading
import time
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from position_tracker.models import (
    Base,
    Investment,
    InvestmentType,
    Quote,
    QuotePrice,
)
from position_tracker.services.exceptions import TickerNotFoundError
from position_tracker.services.market_data.base import (
    HistoricalPricesResult,
    MarketDataProvider,
    OHLCVData,
    ProviderRegistry,
)
from position_tracker.services.positions.types import (
    LedgerTransaction,
    PricePoint,
    QuoteMeta,
)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """Session factory bound to the test engine (used by the backfill coordinator)."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Iterator[Session]:
    """Create a database session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# MOCK MARKET DATA PROVIDER
# =============================================================================

class MockMarketDataProvider(MarketDataProvider):
    """
    Mock implementation of MarketDataProvider for testing.

    Serves configured closes per symbol, or a flat 100.00 close on every
    weekday when nothing is configured. Calls are recorded and may be slowed
    down to exercise concurrency limits. Thread-safe.
    """

    def __init__(self, delay: float = 0.0):
        self._lock = threading.Lock()
        self._closes: dict[str, dict[date, Decimal]] = {}
        self._errors: dict[str, Exception] = {}
        self._delay = delay
        self.calls: list[tuple[str, date, date]] = []
        self._active = 0
        self.max_concurrent = 0

    @property
    def name(self) -> str:
        return "mock"

    def set_closes(self, symbol: str, closes: dict[date, Decimal]) -> None:
        """Configure the closes served for a symbol."""
        self._closes[symbol.upper()] = dict(closes)

    def set_error(self, symbol: str, error: Exception) -> None:
        """Configure an exception raised for a symbol."""
        self._errors[symbol.upper()] = error

    def set_fail_symbol(self, symbol: str) -> None:
        """Configure a symbol the provider does not know."""
        self.set_error(symbol, TickerNotFoundError(symbol=symbol.upper(), provider=self.name))

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def get_historical_prices(
            self,
            symbol: str,
            start_date: date,
            end_date: date,
    ) -> HistoricalPricesResult:
        symbol = symbol.upper()

        with self._lock:
            self.calls.append((symbol, start_date, end_date))
            self._active += 1
            self.max_concurrent = max(self.max_concurrent, self._active)

        try:
            if self._delay:
                time.sleep(self._delay)

            if symbol in self._errors:
                raise self._errors[symbol]

            if symbol in self._closes:
                closes = {
                    d: c for d, c in self._closes[symbol].items()
                    if start_date <= d <= end_date
                }
            else:
                closes = {}
                current = start_date
                while current <= end_date:
                    if current.weekday() < 5:
                        closes[current] = Decimal("100.00")
                    current += timedelta(days=1)

            prices = [
                OHLCVData(date=d, open=c, high=c, low=c, close=c)
                for d, c in sorted(closes.items())
            ]
            return HistoricalPricesResult(
                symbol=symbol,
                start_date=start_date,
                end_date=end_date,
                prices=prices,
            )
        finally:
            with self._lock:
                self._active -= 1


@pytest.fixture
def mock_provider() -> MockMarketDataProvider:
    """Create a fresh mock provider for each test."""
    return MockMarketDataProvider()


@pytest.fixture
def registry(mock_provider: MockMarketDataProvider) -> ProviderRegistry:
    """Registry serving the mock provider under 'mock'."""
    return ProviderRegistry([mock_provider])


# =============================================================================
# SAMPLE DATA FACTORIES
# =============================================================================

def create_quote(
        db: Session,
        symbol: str = "VWCE.DE",
        provider_id: str = "mock",
        name: str | None = "Vanguard FTSE All-World",
        currency: str = "EUR",
        exchange_disposition: str | None = "XETRA",
        type_disposition: str | None = "ETF",
        last_updated_prices: datetime | None = None,
) -> Quote:
    """Factory function for creating Quote entities in the database."""
    quote = Quote(
        symbol=symbol,
        provider_id=provider_id,
        name=name,
        currency=currency,
        exchange_disposition=exchange_disposition,
        type_disposition=type_disposition,
        last_updated_prices=last_updated_prices,
    )
    db.add(quote)
    db.commit()
    db.refresh(quote)
    return quote


def create_investment(
        db: Session,
        quote: Quote,
        on: date | datetime,
        type: InvestmentType = InvestmentType.BUY,
        amount: str | Decimal = "10",
        price_per_unit: str | Decimal = "100",
        total_fees: str | Decimal = "0",
        user_id: str = "user-1",
) -> Investment:
    """Factory function for creating Investment entities in the database."""
    if not isinstance(on, datetime):
        on = datetime(on.year, on.month, on.day, 12, 0)

    investment = Investment(
        user_id=user_id,
        quote_id=quote.id,
        type=type,
        date=on,
        amount=Decimal(amount),
        price_per_unit=Decimal(price_per_unit),
        total_fees=Decimal(total_fees),
    )
    db.add(investment)
    db.commit()
    db.refresh(investment)
    return investment


def create_price(
        db: Session,
        quote: Quote,
        on: date,
        close: str | Decimal,
) -> QuotePrice:
    """Factory function for creating QuotePrice entities in the database."""
    price = QuotePrice(quote_id=quote.id, date=on, close=Decimal(close))
    db.add(price)
    db.commit()
    db.refresh(price)
    return price


def buy(
        on: date,
        amount: str,
        price: str,
        fees: str = "0",
        quote_id: int = 1,
) -> LedgerTransaction:
    """Factory for an in-memory BUY transaction."""
    return LedgerTransaction(
        quote_id=quote_id,
        date=on,
        kind=InvestmentType.BUY,
        amount=Decimal(amount),
        price_per_unit=Decimal(price),
        total_fees=Decimal(fees),
    )


def sell(
        on: date,
        amount: str,
        price: str,
        fees: str = "0",
        quote_id: int = 1,
) -> LedgerTransaction:
    """Factory for an in-memory SELL transaction."""
    return LedgerTransaction(
        quote_id=quote_id,
        date=on,
        kind=InvestmentType.SELL,
        amount=Decimal(amount),
        price_per_unit=Decimal(price),
        total_fees=Decimal(fees),
    )


def dividend(on: date, cash: str, quote_id: int = 1) -> LedgerTransaction:
    """Factory for an in-memory DIVIDEND transaction."""
    return LedgerTransaction(
        quote_id=quote_id,
        date=on,
        kind=InvestmentType.DIVIDEND,
        amount=Decimal(cash),
    )


def price_point(on: date, close: str, quote_id: int = 1) -> PricePoint:
    """Factory for an in-memory PricePoint."""
    return PricePoint(quote_id=quote_id, date=on, close_price=Decimal(close))


def quote_meta(quote_id: int = 1, symbol: str = "VWCE.DE", currency: str = "EUR") -> QuoteMeta:
    """Factory for in-memory QuoteMeta."""
    return QuoteMeta(
        id=quote_id,
        provider_id="mock",
        symbol=symbol,
        name=None,
        exchange_disposition=None,
        type_disposition=None,
        currency=currency,
    )
