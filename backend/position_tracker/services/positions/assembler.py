# backend/position_tracker/services/positions/assembler.py
"""
Snapshot assembler: runs the daily simulation for every instrument in a
ledger and merges the results.

Data Flow:
    ledger → group by quote_id (ledger order kept inside each group)
    prices → one close per (quote_id, date), first point wins
    each group → DailySimulator over [first transaction, to_date]
    all snapshots → keep from_date <= date <= to_date

Every instrument is simulated from its own first transaction, so state
carried into the requested window is identical to a run that started
at from_date with the same history.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from decimal import Decimal

from position_tracker.services.positions.simulator import DailySimulator
from position_tracker.services.positions.types import (
    LedgerTransaction,
    PositionSnapshot,
    PositionsResult,
    PricePoint,
    QuoteMeta,
)

logger = logging.getLogger(__name__)


class SnapshotAssembler:
    """
    Combines per-instrument simulations into one PositionsResult.

    Instruments are independent and are simulated one after another.
    """

    def __init__(self, simulator: DailySimulator | None = None) -> None:
        self._simulator = simulator or DailySimulator()

    def assemble(
            self,
            user_id: str,
            transactions: Sequence[LedgerTransaction],
            prices: Iterable[PricePoint],
            quotes: Mapping[int, QuoteMeta],
            from_date: date,
            to_date: date,
    ) -> PositionsResult:
        """
        Build the snapshots of a user's ledger for [from_date, to_date].

        Args:
            user_id: Owner of the ledger
            transactions: The user's transactions in date order, all dated
                on or before to_date
            prices: Daily closes of the instruments (any order, duplicates allowed)
            quotes: Instrument metadata keyed by quote_id
            from_date: First day to return (inclusive)
            to_date: Last day to simulate and return (inclusive)

        Returns:
            PositionsResult with snapshots ordered by instrument (first
            appearance in the ledger) then date, and one QuoteMeta per
            distinct instrument that has metadata
        """
        if not transactions:
            return PositionsResult()

        by_quote = self._group_by_quote(transactions)
        price_lookup = self._build_price_lookup(prices)

        snapshots: list[PositionSnapshot] = []
        quote_list: list[QuoteMeta] = []
        warnings: list[str] = []

        for quote_id, group in by_quote.items():
            meta = quotes.get(quote_id)
            if meta is None:
                warning = f"No metadata for quote {quote_id}; snapshots carry no currency"
                logger.warning(warning)
                warnings.append(warning)
                currency = ""
            else:
                quote_list.append(meta)
                currency = meta.currency

            instrument_snapshots = self._simulator.simulate(
                user_id=user_id,
                quote_id=quote_id,
                currency=currency,
                transactions=group,
                prices=price_lookup.get(quote_id, {}),
                end_date=to_date,
                warnings=warnings,
            )

            snapshots.extend(
                s for s in instrument_snapshots if from_date <= s.date <= to_date
            )

        logger.debug(
            f"Assembled {len(snapshots)} snapshots for {len(by_quote)} instruments "
            f"({from_date} to {to_date})"
        )

        return PositionsResult(snapshots=snapshots, quotes=quote_list, warnings=warnings)

    @staticmethod
    def _group_by_quote(
            transactions: Sequence[LedgerTransaction],
    ) -> dict[int, list[LedgerTransaction]]:
        """Group transactions by instrument; dict order is first appearance."""
        groups: dict[int, list[LedgerTransaction]] = {}
        for txn in transactions:
            groups.setdefault(txn.quote_id, []).append(txn)
        return groups

    @staticmethod
    def _build_price_lookup(
            prices: Iterable[PricePoint],
    ) -> dict[int, dict[date, Decimal]]:
        """Build {quote_id: {date: close}}, keeping the first point per date."""
        lookup: dict[int, dict[date, Decimal]] = {}
        for point in prices:
            lookup.setdefault(point.quote_id, {}).setdefault(point.date, point.close_price)
        return lookup
