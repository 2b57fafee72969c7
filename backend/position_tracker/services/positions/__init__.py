# backend/position_tracker/services/positions/__init__.py
"""
Position engine package.

Reconstructs day-by-day holdings of a user's ledger with FIFO lot
accounting: held amount, cost basis, realized and unrealized gain.

Usage:
    from position_tracker.services.positions import SnapshotAssembler

    result = SnapshotAssembler().assemble(
        user_id="u-1",
        transactions=transactions,   # LedgerTransaction, date order
        prices=prices,               # PricePoint
        quotes=quotes,               # {quote_id: QuoteMeta}
        from_date=date(2024, 2, 10),
        to_date=date(2024, 2, 15),
    )

Architecture:
    positions/
    ├── __init__.py      # This file - package exports
    ├── types.py         # Engine data classes
    ├── ledger.py        # LotLedger (FIFO queue of open lots)
    ├── calculators.py   # PositionState + TransactionApplier
    ├── simulator.py     # DailySimulator (one instrument, calendar walk)
    ├── assembler.py     # SnapshotAssembler (all instruments, date filter)
    └── service.py       # PositionService (DB access, backfill, assembly)

PositionService is imported from .service directly; it depends on the
market_data package, which in turn uses the types defined here.

Data Flow:
    Investments → LedgerTransaction ─┐
    QuotePrices → PricePoint ────────┼→ SnapshotAssembler
                                     │     └→ DailySimulator (per quote)
                                     │          └→ TransactionApplier → LotLedger
                                     └→ PositionsResult (snapshots + quotes)
"""

from position_tracker.services.positions.assembler import SnapshotAssembler
from position_tracker.services.positions.calculators import PositionState, TransactionApplier
from position_tracker.services.positions.ledger import LotLedger
from position_tracker.services.positions.simulator import DailySimulator
from position_tracker.services.positions.types import (
    ConsumeResult,
    LedgerTransaction,
    Lot,
    OversellPolicy,
    PositionSnapshot,
    PositionsResult,
    PricePoint,
    QuoteMeta,
    RunningTotals,
)

__all__ = [
    # Engine
    "SnapshotAssembler",
    "DailySimulator",
    "TransactionApplier",
    "PositionState",
    "LotLedger",

    # Data types
    "LedgerTransaction",
    "PricePoint",
    "Lot",
    "ConsumeResult",
    "RunningTotals",
    "PositionSnapshot",
    "QuoteMeta",
    "PositionsResult",
    "OversellPolicy",
]
