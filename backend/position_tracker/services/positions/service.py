# backend/position_tracker/services/positions/service.py
"""
Position Service - orchestrator for position snapshots.

Single entry point for the positions endpoint:
- get_positions(): daily snapshots of every holding of a user

Steps:
    1. Resolve and validate the date range
    2. Load the user's investments up to the end date
    3. Backfill price history of every instrument (bounded, cancellable)
    4. Load stored prices and instrument metadata
    5. Run the snapshot assembler

Design Principles:
- Dependency Injection: backfill, price service and assembler via constructor
- No HTTP Knowledge: Raises domain exceptions, not HTTPException
- The user id is an explicit argument; this layer never resolves it

Usage:
    service = PositionService(price_service, backfill=coordinator)
    result = service.get_positions(db, user_id="u-1", from_date=..., to_date=...)
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, time, timedelta

from sqlalchemy import select, and_
from sqlalchemy.orm import Session

from position_tracker.models import Investment, Quote
from position_tracker.services.exceptions import InvalidDateRangeError
from position_tracker.services.market_data.backfill import BackfillCoordinator, BackfillRequest
from position_tracker.services.market_data.price_service import QuotePriceService
from position_tracker.services.positions.assembler import SnapshotAssembler
from position_tracker.services.positions.types import (
    LedgerTransaction,
    PositionsResult,
    QuoteMeta,
)
from position_tracker.utils.date_utils import to_utc_date, utc_today

logger = logging.getLogger(__name__)


class PositionService:
    """
    Builds position snapshots for a user's ledger.

    Attributes:
        PRICE_LOOKBACK_DAYS: Days before from_date included in the backfill,
            so the first days of the window have a close to carry forward
        _price_service: Reads stored prices
        _backfill: Tops up price history before simulating (None = stored prices only)
        _assembler: Runs the per-instrument simulations
    """

    PRICE_LOOKBACK_DAYS: int = 7

    def __init__(
            self,
            price_service: QuotePriceService,
            backfill: BackfillCoordinator | None = None,
            assembler: SnapshotAssembler | None = None,
    ) -> None:
        self._price_service = price_service
        self._backfill = backfill
        self._assembler = assembler or SnapshotAssembler()
        logger.info("PositionService initialized")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def get_positions(
            self,
            db: Session,
            user_id: str,
            from_date: date | None = None,
            to_date: date | None = None,
            cancel_event: threading.Event | None = None,
    ) -> PositionsResult:
        """
        Daily snapshots of every holding of a user within [from_date, to_date].

        Args:
            db: Database session
            user_id: Owner of the investments
            from_date: First day to return (default: no lower bound)
            to_date: Last day to return (default: today, UTC)
            cancel_event: Set to abandon the price backfill

        Returns:
            PositionsResult; empty when the user has no investments up to to_date

        Raises:
            InvalidDateRangeError: If from_date is after to_date
            BackfillCancelledError: If cancel_event is set during the backfill
            BackfillTimeoutError: If the backfill exceeds its deadline
            OversellError: If oversells are rejected and the ledger has one
        """
        to_date = to_date or utc_today()
        from_date = from_date or date.min

        if from_date > to_date:
            raise InvalidDateRangeError(from_date, to_date)

        logger.info(f"Calculating positions for user {user_id}: {from_date} to {to_date}")

        investments = self._fetch_investments(db, user_id, to_date)
        if not investments:
            logger.info(f"User {user_id} has no investments up to {to_date}")
            return PositionsResult()

        transactions = [self._to_ledger_transaction(inv) for inv in investments]
        quote_ids = list(dict.fromkeys(t.quote_id for t in transactions))

        warnings: list[str] = []
        if self._backfill is not None:
            requests = self._build_backfill_requests(transactions, from_date, to_date)
            backfill_result = self._backfill.run(requests, cancel_event=cancel_event)
            warnings.extend(backfill_result.warnings)

        prices = self._price_service.get_prices(db, quote_ids, to_date)
        quotes = self._fetch_quotes(db, quote_ids)

        result = self._assembler.assemble(
            user_id=user_id,
            transactions=transactions,
            prices=prices,
            quotes=quotes,
            from_date=from_date,
            to_date=to_date,
        )
        result.warnings = warnings + result.warnings

        logger.info(
            f"Positions for user {user_id}: {len(result.snapshots)} snapshots, "
            f"{len(result.quotes)} quotes, {len(result.warnings)} warnings"
        )
        return result

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    def _build_backfill_requests(
            self,
            transactions: list[LedgerTransaction],
            from_date: date,
            to_date: date,
    ) -> list[BackfillRequest]:
        """One request per instrument, starting no earlier than its first transaction."""
        first_dates: dict[int, date] = {}
        for txn in transactions:
            first_dates.setdefault(txn.quote_id, txn.date)

        lookback = self.PRICE_LOOKBACK_DAYS
        window_start = (
            from_date - timedelta(days=lookback)
            if from_date > date.min + timedelta(days=lookback)
            else date.min
        )

        return [
            BackfillRequest(
                quote_id=quote_id,
                start_date=min(max(first_date, window_start), to_date),
                end_date=to_date,
            )
            for quote_id, first_date in first_dates.items()
        ]

    @staticmethod
    def _to_ledger_transaction(investment: Investment) -> LedgerTransaction:
        return LedgerTransaction(
            quote_id=investment.quote_id,
            date=to_utc_date(investment.date),
            kind=investment.type,
            amount=investment.amount,
            price_per_unit=investment.price_per_unit,
            total_fees=investment.total_fees,
        )

    def _fetch_investments(
            self,
            db: Session,
            user_id: str,
            to_date: date,
    ) -> list[Investment]:
        """
        Fetch a user's investments dated on or before to_date.

        Returns:
            Investments ordered by date, then insertion order
        """
        if to_date < date.max:
            end_exclusive = datetime.combine(to_date + timedelta(days=1), time.min)
        else:
            end_exclusive = datetime.max

        query = (
            select(Investment)
            .where(
                and_(
                    Investment.user_id == user_id,
                    Investment.date < end_exclusive,
                )
            )
            .order_by(Investment.date, Investment.id)
        )
        return list(db.scalars(query).all())

    def _fetch_quotes(self, db: Session, quote_ids: list[int]) -> dict[int, QuoteMeta]:
        query = select(Quote).where(Quote.id.in_(quote_ids))
        return {
            q.id: QuoteMeta(
                id=q.id,
                provider_id=q.provider_id,
                symbol=q.symbol,
                name=q.name,
                exchange_disposition=q.exchange_disposition,
                type_disposition=q.type_disposition,
                currency=q.currency,
                last_updated_prices=q.last_updated_prices,
            )
            for q in db.scalars(query).all()
        }
