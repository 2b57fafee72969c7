# backend/position_tracker/services/positions/simulator.py
"""
Daily position simulator for a single instrument.

Replays an instrument's transactions over every calendar day from its first
transaction to the requested end date, emitting one snapshot per day once a
price is known.

Rolling State pattern:
    Transactions are consumed with a single cursor while the days advance,
    so a walk costs O(D + T) for D days and T transactions.

Price handling:
    - exact-date close wins
    - days without a close reuse the last known close (weekends, holidays)
    - days before the first known close produce no snapshot
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal

from position_tracker.services.positions.calculators import PositionState, TransactionApplier
from position_tracker.services.positions.types import LedgerTransaction, PositionSnapshot
from position_tracker.utils.date_utils import date_range

logger = logging.getLogger(__name__)


class DailySimulator:
    """
    Walks the calendar for one instrument.

    Attributes:
        _applier: Applies each transaction to the rolling state
    """

    def __init__(self, applier: TransactionApplier | None = None) -> None:
        self._applier = applier or TransactionApplier()

    def simulate(
            self,
            user_id: str,
            quote_id: int,
            currency: str,
            transactions: Sequence[LedgerTransaction],
            prices: Mapping[date, Decimal],
            end_date: date,
            warnings: list[str] | None = None,
    ) -> list[PositionSnapshot]:
        """
        Produce the daily snapshots of one instrument.

        Args:
            user_id: Owner of the ledger, copied into every snapshot
            quote_id: Instrument being simulated
            currency: Instrument currency, copied into every snapshot
            transactions: The instrument's transactions in date order.
                Same-day transactions are applied in the given order.
            prices: Close per day (at most one per day)
            end_date: Last day to simulate (inclusive)
            warnings: Optional list that collects data quality warnings

        Returns:
            Snapshots in ascending date order, starting at the first day
            that has a known price

        Raises:
            OversellError: If the applier rejects oversells
        """
        if not transactions:
            return []

        start_date = transactions[0].date
        if start_date > end_date:
            logger.debug(
                f"Quote {quote_id}: first transaction {start_date} is after {end_date}, nothing to simulate"
            )
            return []

        state = PositionState(quote_id=quote_id)
        snapshots: list[PositionSnapshot] = []
        last_known_price: Decimal | None = None
        cursor = 0

        for day in date_range(start_date, end_date):
            while cursor < len(transactions) and transactions[cursor].date <= day:
                warning = self._applier.apply(state, transactions[cursor])
                if warning and warnings is not None:
                    warnings.append(warning)
                cursor += 1

            price = prices.get(day)
            if price is not None:
                last_known_price = price
            elif last_known_price is None:
                continue

            snapshots.append(
                state.snapshot(
                    user_id=user_id,
                    day=day,
                    currency=currency,
                    market_price=last_known_price,
                )
            )

        if not snapshots:
            logger.debug(f"Quote {quote_id}: no price on or before {end_date}, no snapshots")

        return snapshots
