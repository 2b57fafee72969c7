# backend/position_tracker/services/positions/types.py
"""
Internal data types for the position engine.

These dataclasses are used by the ledger, simulator and assembler.
They are NOT Pydantic schemas - those live in position_tracker/schemas/positions.py
for API serialization.

Design Principles:
- Inputs and outputs are immutable (frozen=True)
- Decimal for ALL financial values and quantities (never float)
- date (not datetime) for transaction and snapshot days
- Mutable state (lots, running totals) never leaves the engine

Type Hierarchy:
    LedgerTransaction   - One buy/sell/dividend, normalized to a UTC day
    PricePoint          - One daily close for one instrument
    Lot                 - Open cost-basis lot in the FIFO queue
    ConsumeResult       - Outcome of consuming lots for a sell
    RunningTotals       - Per-instrument accumulators
    PositionSnapshot    - State of one holding at the end of one day
    QuoteMeta           - Instrument metadata attached to a result
    PositionsResult     - Snapshots plus the instruments they reference
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from position_tracker.models import InvestmentType


ZERO = Decimal("0")


class OversellPolicy(str, enum.Enum):
    """
    Handling of a sell larger than the amount currently held.

    ALLOW drains every open lot and ignores the unfilled remainder.
    REJECT raises OversellError before any state is touched.
    """
    ALLOW = "allow"
    REJECT = "reject"


# =============================================================================
# INPUTS
# =============================================================================

@dataclass(frozen=True)
class LedgerTransaction:
    """
    A single ledger entry as seen by the engine.

    Attributes:
        quote_id: Instrument the transaction belongs to
        date: UTC calendar day of the transaction
        kind: BUY, SELL or DIVIDEND
        amount: Units for BUY/SELL, cash received for DIVIDEND
        price_per_unit: Trade price (ignored for DIVIDEND)
        total_fees: Fees charged for the transaction

    Note:
        Same-day transactions are applied in the order they appear in the
        ledger. Nothing in the engine re-sorts them.
    """

    quote_id: int
    date: date
    kind: InvestmentType
    amount: Decimal
    price_per_unit: Decimal = ZERO
    total_fees: Decimal = ZERO


@dataclass(frozen=True)
class PricePoint:
    """Closing price of one instrument on one day."""

    quote_id: int
    date: date
    close_price: Decimal


# =============================================================================
# LEDGER STATE
# =============================================================================

@dataclass
class Lot:
    """
    An open purchase lot.

    Attributes:
        remaining_amount: Units of this lot not yet sold (always > 0 while queued)
        effective_unit_cost: price_per_unit + total_fees / amount of the buy
    """

    remaining_amount: Decimal
    effective_unit_cost: Decimal

    @property
    def cost(self) -> Decimal:
        """Cost basis of the units still held from this lot."""
        return self.remaining_amount * self.effective_unit_cost


@dataclass(frozen=True)
class ConsumeResult:
    """
    What a FIFO consumption took from the ledger.

    Attributes:
        consumed_amount: Units actually removed from lots
        cost_consumed: Cost basis of the removed units
        unfilled_amount: Units requested but not available (oversell)
    """

    consumed_amount: Decimal
    cost_consumed: Decimal
    unfilled_amount: Decimal

    @property
    def is_oversell(self) -> bool:
        return self.unfilled_amount > ZERO


@dataclass
class RunningTotals:
    """
    Per-instrument accumulators updated by each transaction.

    Attributes:
        total_fees: Fees of every buy and sell
        realized_cash: Dividends plus net sell proceeds
        realized_gain: Dividends plus (net proceeds - FIFO cost) of each sell
        total_invested_cash: Gross cash paid for buys, fees included
    """

    total_fees: Decimal = ZERO
    realized_cash: Decimal = ZERO
    realized_gain: Decimal = ZERO
    total_invested_cash: Decimal = ZERO


# =============================================================================
# OUTPUTS
# =============================================================================

@dataclass(frozen=True)
class PositionSnapshot:
    """
    End-of-day state of one holding.

    Attributes:
        user_id: Owner of the ledger
        quote_id: Instrument
        date: Snapshot day
        currency: Instrument currency (no conversion is applied)
        amount: Units held
        invested: Cost basis of the units held (sum over open lots)
        total_fees: Cumulative fees
        market_price_per_unit: Close of this day, or the last known close
        realized_gain: Cumulative realized gain including dividends
        total_invested_cash: Cumulative gross cash put in via buys
    """

    user_id: str
    quote_id: int
    date: date
    currency: str
    amount: Decimal
    invested: Decimal
    total_fees: Decimal
    market_price_per_unit: Decimal
    realized_gain: Decimal
    total_invested_cash: Decimal

    @property
    def current_value(self) -> Decimal:
        return self.market_price_per_unit * self.amount

    @property
    def unrealized_gain(self) -> Decimal:
        return self.current_value - self.invested

    @property
    def total_profit(self) -> Decimal:
        return self.unrealized_gain + self.realized_gain


@dataclass(frozen=True)
class QuoteMeta:
    """Instrument metadata returned alongside snapshots."""

    id: int
    provider_id: str
    symbol: str
    name: str | None
    exchange_disposition: str | None
    type_disposition: str | None
    currency: str
    last_updated_prices: datetime | None = None


@dataclass
class PositionsResult:
    """
    Result of a positions request.

    Attributes:
        snapshots: Snapshots of every instrument within the requested range
        quotes: One entry per distinct instrument in the ledger
        warnings: Data quality notes (failed price fetches, oversells, ...)
    """

    snapshots: list[PositionSnapshot] = field(default_factory=list)
    quotes: list[QuoteMeta] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.snapshots and not self.quotes
