# backend/position_tracker/services/market_data/price_service.py
"""
Quote price service: stored daily closes plus on-demand refresh.

Prices live in the quote_prices table. Before a positions request is
simulated, ``ensure_history`` tops up the stored range of each quote from
its market data provider.

Refresh rules (per quote):
    - If the quote's prices were refreshed less than PRICE_REFRESH_MINUTES
      ago, stored prices are returned as they are.
    - Otherwise one combined range is fetched: it starts at the requested
      start when stored prices do not reach back that far, and ends at the
      requested end when they do not reach forward that far. If only one
      side is missing, the other side is last_updated_prices (start) or
      today (end).
    - Fetched prices are discarded when the caller aborted meanwhile.
    - Otherwise they are upserted on (quote_id, date) and
      last_updated_prices is set to now.

Usage:
    service = QuotePriceService(registry)
    points = service.ensure_history(db, quote_id=1, start_date=..., end_date=...)
"""

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select, and_
from sqlalchemy.orm import Session

from position_tracker.config import settings
from position_tracker.models import Quote, QuotePrice
from position_tracker.services.exceptions import QuoteNotFoundError
from position_tracker.services.market_data.base import OHLCVData, ProviderRegistry
from position_tracker.services.positions.types import PricePoint
from position_tracker.utils.date_utils import ensure_utc, utc_today
from position_tracker.utils.sql import upsert

logger = logging.getLogger(__name__)


class QuotePriceService:
    """
    Reads and refreshes stored quote prices.

    Attributes:
        _registry: Providers keyed by Quote.provider_id
        _refresh_after: Minimum age of last_updated_prices before re-fetching
    """

    def __init__(
            self,
            registry: ProviderRegistry,
            refresh_minutes: int | None = None,
    ) -> None:
        self._registry = registry
        minutes = settings.price_refresh_minutes if refresh_minutes is None else refresh_minutes
        self._refresh_after = timedelta(minutes=minutes)
        logger.info(f"QuotePriceService initialized (refresh after {minutes} min)")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def ensure_history(
            self,
            db: Session,
            quote_id: int,
            start_date: date,
            end_date: date,
            should_abort: Callable[[], bool] | None = None,
    ) -> list[PricePoint]:
        """
        Make sure prices for [start_date, end_date] are stored, then return them.

        Args:
            db: Database session (committed when prices are stored)
            quote_id: Quote to backfill
            start_date: First day needed (inclusive)
            end_date: Last day needed (inclusive)
            should_abort: Asked once the provider answered; when it returns
                True the fetched prices are discarded unstored

        Returns:
            One PricePoint per stored day in the range, ascending

        Raises:
            QuoteNotFoundError: If the quote does not exist
            MarketDataError: If the provider fails
        """
        quote = db.get(Quote, quote_id)
        if quote is None:
            raise QuoteNotFoundError(quote_id)

        stored = self._fetch_stored(db, quote_id, start_date, end_date)

        if self._is_fresh(quote):
            logger.debug(f"Prices of {quote.symbol} are fresh, skipping provider")
            return self._to_points(quote_id, stored, start_date, end_date)

        fetch_range = self._missing_range(quote, stored, start_date, end_date)
        if fetch_range is None:
            logger.debug(f"Prices of {quote.symbol} cover {start_date} to {end_date}")
            return self._to_points(quote_id, stored, start_date, end_date)

        fetch_start, fetch_end = fetch_range
        provider = self._registry.get(quote.provider_id)

        logger.info(
            f"Fetching {quote.symbol} from {provider.name}: {fetch_start} to {fetch_end}"
        )
        result = provider.get_historical_prices(quote.symbol, fetch_start, fetch_end)

        if should_abort is not None and should_abort():
            logger.info(f"Discarding {len(result.prices)} prices of {quote.symbol}: run aborted")
            return self._to_points(quote_id, stored, start_date, end_date)

        if result.prices:
            self._store_prices(db, quote, result.prices)
            stored = self._fetch_stored(db, quote_id, start_date, end_date)

        return self._to_points(quote_id, stored, start_date, end_date)

    def get_prices(
            self,
            db: Session,
            quote_ids: Iterable[int],
            up_to: date,
    ) -> list[PricePoint]:
        """
        Load every stored close of the given quotes dated on or before up_to.

        Returns:
            PricePoints ordered by quote_id then date
        """
        ids = list(quote_ids)
        if not ids:
            return []

        query = (
            select(QuotePrice)
            .where(
                and_(
                    QuotePrice.quote_id.in_(ids),
                    QuotePrice.date <= up_to,
                )
            )
            .order_by(QuotePrice.quote_id, QuotePrice.date)
        )

        return [
            PricePoint(quote_id=p.quote_id, date=p.date, close_price=p.close)
            for p in db.scalars(query).all()
        ]

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    def _is_fresh(self, quote: Quote) -> bool:
        if quote.last_updated_prices is None:
            return False
        age = datetime.now(timezone.utc) - ensure_utc(quote.last_updated_prices)
        return age < self._refresh_after

    @staticmethod
    def _missing_range(
            quote: Quote,
            stored: list[QuotePrice],
            start_date: date,
            end_date: date,
    ) -> tuple[date, date] | None:
        """
        Work out the single range to request from the provider.

        Returns:
            (fetch_start, fetch_end), or None when nothing has to be fetched
        """
        earliest = stored[0].date if stored else None
        latest = stored[-1].date if stored else None

        fetch_start = start_date if earliest is None or earliest > start_date else None
        fetch_end = end_date if latest is None or latest < end_date else None

        if fetch_start is None and fetch_end is None:
            return None

        if fetch_start is None:
            fetch_start = (
                ensure_utc(quote.last_updated_prices).date()
                if quote.last_updated_prices is not None
                else start_date
            )
        if fetch_end is None:
            fetch_end = utc_today()

        if fetch_start > fetch_end:
            return None

        return fetch_start, fetch_end

    def _fetch_stored(
            self,
            db: Session,
            quote_id: int,
            start_date: date,
            end_date: date,
    ) -> list[QuotePrice]:
        query = (
            select(QuotePrice)
            .where(
                and_(
                    QuotePrice.quote_id == quote_id,
                    QuotePrice.date >= start_date,
                    QuotePrice.date <= end_date,
                )
            )
            .order_by(QuotePrice.date)
        )
        return list(db.scalars(query).all())

    def _store_prices(self, db: Session, quote: Quote, prices: list[OHLCVData]) -> int:
        """
        Upsert fetched prices and stamp the quote as refreshed.

        Returns:
            Number of price rows written
        """
        # One row per date; the first price delivered for a date wins
        by_date: dict[date, OHLCVData] = {}
        for p in prices:
            by_date.setdefault(p.date, p)

        records = [
            {
                "quote_id": quote.id,
                "date": p.date,
                "open": p.open,
                "high": p.high,
                "low": p.low,
                "close": p.close,
                "adjusted_close": p.adjusted_close,
            }
            for p in by_date.values()
        ]

        try:
            db.execute(
                upsert(
                    db,
                    QuotePrice,
                    records,
                    index_elements=["quote_id", "date"],
                    update_columns=["open", "high", "low", "close", "adjusted_close"],
                )
            )
            quote.last_updated_prices = datetime.now(timezone.utc)
            db.commit()
        except Exception as e:
            logger.error(f"Error storing prices for {quote.symbol}: {e}")
            db.rollback()
            raise

        logger.info(f"Stored {len(records)} prices for {quote.symbol}")
        return len(records)

    @staticmethod
    def _to_points(
            quote_id: int,
            stored: list[QuotePrice],
            start_date: date,
            end_date: date,
    ) -> list[PricePoint]:
        seen: set[date] = set()
        points = []
        for p in stored:
            if p.date in seen or not (start_date <= p.date <= end_date):
                continue
            seen.add(p.date)
            points.append(PricePoint(quote_id=quote_id, date=p.date, close_price=p.close))
        return points
