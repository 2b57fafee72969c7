# backend/position_tracker/services/market_data/yahoo.py
"""
Yahoo Finance provider (yfinance).

Quote symbols are stored in Yahoo's own notation ("AAPL", "VWCE.DE"), so
they are passed through upper-cased. Bars are requested unadjusted: the
position engine values holdings at the prices that were actually traded,
and split/dividend adjustment would rewrite history on every refresh.

yfinance signals most failures through plain exceptions whose text is the
only hint to the cause; ``_classify_error`` maps them onto the provider
error types so the retry policy in MarketDataProvider can act on them.
"""

import logging
import math
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import yfinance as yf

from position_tracker.services.exceptions import (
    MarketDataError,
    ProviderUnavailableError,
    RateLimitError,
    TickerNotFoundError,
)
from position_tracker.services.market_data.base import (
    HistoricalPricesResult,
    MarketDataProvider,
    OHLCVData,
)

logger = logging.getLogger(__name__)

# quote_prices columns are Numeric(18, 8)
PRICE_QUANTUM = Decimal("0.00000001")

_NOT_FOUND_HINTS = ("not found", "no data", "delisted")
_RATE_LIMIT_HINTS = ("rate limit", "too many requests")


class YahooFinanceProvider(MarketDataProvider):
    """
    Daily bars from Yahoo Finance.

    Args:
        timeout: Seconds per HTTP request made by yfinance
    """

    def __init__(self, timeout: int = 10) -> None:
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "yahoo"

    def get_historical_prices(
            self,
            symbol: str,
            start_date: date,
            end_date: date,
    ) -> HistoricalPricesResult:
        symbol = symbol.strip().upper()
        prices = self._execute_with_retry(self._fetch_bars, symbol, start_date, end_date)
        logger.debug(f"Yahoo returned {len(prices)} bars for {symbol} ({start_date} to {end_date})")
        return HistoricalPricesResult(
            symbol=symbol,
            start_date=start_date,
            end_date=end_date,
            prices=prices,
        )

    def _fetch_bars(self, symbol: str, start_date: date, end_date: date) -> list[OHLCVData]:
        """One attempt; errors are already mapped for the retry policy."""
        try:
            ticker = yf.Ticker(symbol)
            df = ticker.history(
                start=start_date.isoformat(),
                end=_exclusive_end(end_date).isoformat(),
                interval="1d",
                auto_adjust=False,
                timeout=self._timeout,
            )
            if df.empty and not self._is_known_symbol(ticker.info):
                raise TickerNotFoundError(symbol=symbol, provider=self.name)
        except MarketDataError:
            raise
        except Exception as e:
            raise self._classify_error(symbol, e) from e

        return self._dataframe_to_ohlcv(df)

    def _classify_error(self, symbol: str, error: Exception) -> MarketDataError:
        message = str(error).lower()
        if any(hint in message for hint in _NOT_FOUND_HINTS):
            return TickerNotFoundError(symbol=symbol, provider=self.name)
        if any(hint in message for hint in _RATE_LIMIT_HINTS):
            return RateLimitError(provider=self.name)
        logger.warning(f"Yahoo Finance request for {symbol} failed: {error}")
        return ProviderUnavailableError(provider=self.name, reason=str(error))

    def _dataframe_to_ohlcv(self, df) -> list[OHLCVData]:
        """
        Turn a yfinance history frame into bars.

        Rows without a usable close are dropped. A missing open, high or
        low is filled with the close, since only the close is valued.
        """
        bars = []
        for idx, row in df.iterrows():
            bar_date = idx.date() if hasattr(idx, "date") else idx
            close = _to_decimal(row.get("Close"))
            if close is None or close <= 0:
                logger.debug(f"Dropping {bar_date}: no close")
                continue

            try:
                bars.append(OHLCVData(
                    date=bar_date,
                    open=_to_decimal(row.get("Open")) or close,
                    high=_to_decimal(row.get("High")) or close,
                    low=_to_decimal(row.get("Low")) or close,
                    close=close,
                    adjusted_close=_to_decimal(row.get("Adj Close")),
                ))
            except ValueError as e:
                logger.warning(f"Dropping {bar_date}: {e}")
        return bars

    @staticmethod
    def _is_known_symbol(info: dict | None) -> bool:
        """Yahoo answers unknown symbols with an info dict lacking price and names."""
        if not info:
            return False
        return any(info.get(key) for key in ("regularMarketPrice", "shortName", "longName"))


def _exclusive_end(end_date: date) -> date:
    """yfinance treats end as exclusive. Nothing trades on date.max, so it is kept as is."""
    if end_date == date.max:
        return end_date
    return end_date + timedelta(days=1)


def _to_decimal(value: Any) -> Decimal | None:
    """Float cell to Decimal at column precision; None for NaN or missing."""
    if value is None:
        return None
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(as_float):
        return None
    return Decimal(str(value)).quantize(PRICE_QUANTUM)
