# backend/position_tracker/services/market_data/base.py
"""
Market data provider interface and registry.

Every quote names the provider that serves its prices (Quote.provider_id).
The ProviderRegistry resolves that id to a MarketDataProvider; the price
service never talks to a concrete provider directly.

Providers only deliver daily bars. They do not touch the database; storing
and deduplicating bars is QuotePriceService's job.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from position_tracker.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Errors worth another attempt; everything else fails the fetch at once
RETRYABLE_ERRORS = (ProviderUnavailableError, RateLimitError)


@dataclass(frozen=True)
class OHLCVData:
    """
    One daily bar, in the quote's currency.

    ``close`` is the price positions are valued at, so it must be positive.
    """

    date: date
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    adjusted_close: Decimal | None = None

    def __post_init__(self) -> None:
        if self.close <= 0:
            raise ValueError(f"close price must be positive, got {self.close}")
        if self.high < self.low:
            raise ValueError(f"high ({self.high}) cannot be less than low ({self.low})")


@dataclass
class HistoricalPricesResult:
    """
    Bars returned for one symbol and requested range.

    Days without trading (weekends, holidays) are simply absent from
    ``prices``; an empty list for a known symbol is not an error.
    """

    symbol: str
    start_date: date
    end_date: date
    prices: list[OHLCVData] = field(default_factory=list)

    @property
    def first_date(self) -> date | None:
        return min((p.date for p in self.prices), default=None)

    @property
    def last_date(self) -> date | None:
        return max((p.date for p in self.prices), default=None)

    @property
    def days_fetched(self) -> int:
        return len(self.prices)


class MarketDataProvider(ABC):
    """
    Source of daily price history.

    Subclasses implement ``name`` and ``get_historical_prices`` and wrap
    their network calls in ``_execute_with_retry``. Backoff is tuned via
    class attributes (tests set the waits to zero):

        MAX_RETRY_ATTEMPTS  total attempts, first one included
        RETRY_MIN_WAIT      first wait in seconds
        RETRY_MAX_WAIT      cap on a single wait in seconds
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: float = 1
    RETRY_MAX_WAIT: float = 10

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider id, matched case-insensitively against Quote.provider_id."""

    @abstractmethod
    def get_historical_prices(
            self,
            symbol: str,
            start_date: date,
            end_date: date,
    ) -> HistoricalPricesResult:
        """
        Fetch daily bars for ``symbol`` between both dates, inclusive.

        Raises:
            TickerNotFoundError: Symbol not known to the provider
            ProviderUnavailableError: Network or API error, after retries
            RateLimitError: Still throttled after retries
        """

    def _execute_with_retry(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call ``func``, retrying RETRYABLE_ERRORS with exponential backoff."""
        retrying = Retrying(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(min=self.RETRY_MIN_WAIT, max=self.RETRY_MAX_WAIT),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retrying(func, *args, **kwargs)


class ProviderRegistry:
    """
    Providers keyed by their case-insensitive name.

    Usage:
        registry = ProviderRegistry([YahooFinanceProvider()])
        provider = registry.get("Yahoo")
    """

    def __init__(self, providers: list[MarketDataProvider] | None = None) -> None:
        self._providers: dict[str, MarketDataProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: MarketDataProvider) -> None:
        key = provider.name.lower()
        if key in self._providers:
            logger.warning(f"Replacing registered market data provider '{provider.name}'")
        self._providers[key] = provider

    def get(self, provider_id: str) -> MarketDataProvider:
        """
        Look up a provider.

        Raises:
            ProviderUnavailableError: If no provider is registered under the id
        """
        provider = self._providers.get(provider_id.lower())
        if provider is None:
            raise ProviderUnavailableError(provider_id, "no such provider is registered")
        return provider

    def __contains__(self, provider_id: str) -> bool:
        return provider_id.lower() in self._providers

    @property
    def names(self) -> list[str]:
        return sorted(self._providers)
