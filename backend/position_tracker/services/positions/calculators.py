# backend/position_tracker/services/positions/calculators.py
"""
Per-transaction position calculators.

- PositionState: Lot ledger plus running totals for one instrument
- TransactionApplier: Folds one transaction into a PositionState

Design Principles:
- The applier is stateless apart from its oversell policy
- All mutation happens on the PositionState passed in
- Decimal for ALL financial calculations, no rounding

Usage:
    applier = TransactionApplier()
    state = PositionState(quote_id=1)
    for txn in transactions:
        applier.apply(state, txn)
    snapshot = state.snapshot(user_id, day, currency, price)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from position_tracker.models import InvestmentType
from position_tracker.services.exceptions import OversellError
from position_tracker.services.positions.ledger import LotLedger
from position_tracker.services.positions.types import (
    LedgerTransaction,
    OversellPolicy,
    PositionSnapshot,
    RunningTotals,
)

logger = logging.getLogger(__name__)


# =============================================================================
# POSITION STATE
# =============================================================================

@dataclass
class PositionState:
    """
    Mutable position of one instrument while the ledger is being replayed.

    Attributes:
        quote_id: Instrument this state belongs to
        ledger: Open lots in FIFO order
        totals: Running accumulators
    """

    quote_id: int
    ledger: LotLedger = field(default_factory=LotLedger)
    totals: RunningTotals = field(default_factory=RunningTotals)

    def snapshot(
            self,
            user_id: str,
            day: date,
            currency: str,
            market_price: Decimal,
    ) -> PositionSnapshot:
        """
        Freeze the current state into a snapshot.

        invested is recomputed from the open lots on every call.
        """
        return PositionSnapshot(
            user_id=user_id,
            quote_id=self.quote_id,
            date=day,
            currency=currency,
            amount=self.ledger.held_amount,
            invested=self.ledger.cost_basis,
            total_fees=self.totals.total_fees,
            market_price_per_unit=market_price,
            realized_gain=self.totals.realized_gain,
            total_invested_cash=self.totals.total_invested_cash,
        )


# =============================================================================
# TRANSACTION APPLIER
# =============================================================================

class TransactionApplier:
    """
    Applies buys, sells and dividends to a PositionState.

    BUY:
        total_fees += fees
        total_invested_cash += amount × price + fees
        new lot (amount, price + fees / amount)

    SELL:
        net = amount × price - fees
        realized_cash += net, total_fees += fees
        realized_gain += net - FIFO cost of the units sold

    DIVIDEND:
        realized_cash += amount, realized_gain += amount

    Note:
        A sell larger than the held amount is an oversell. With
        OversellPolicy.ALLOW every lot is drained and the remainder is
        ignored (a warning is logged and returned). With REJECT an
        OversellError is raised and the state is left untouched.
    """

    def __init__(self, oversell_policy: OversellPolicy = OversellPolicy.ALLOW) -> None:
        self._oversell_policy = oversell_policy

    @property
    def oversell_policy(self) -> OversellPolicy:
        return self._oversell_policy

    def apply(self, state: PositionState, txn: LedgerTransaction) -> str | None:
        """
        Apply a single transaction to the state (mutates state).

        Args:
            state: Position of the transaction's instrument
            txn: Transaction to apply

        Returns:
            A warning message when the transaction could not be applied
            as recorded, otherwise None

        Raises:
            OversellError: On an oversell under OversellPolicy.REJECT
        """
        if txn.kind == InvestmentType.BUY:
            self._apply_buy(state, txn)
        elif txn.kind == InvestmentType.SELL:
            return self._apply_sell(state, txn)
        elif txn.kind == InvestmentType.DIVIDEND:
            self._apply_dividend(state, txn)
        return None

    def _apply_buy(self, state: PositionState, txn: LedgerTransaction) -> None:
        totals = state.totals
        totals.total_fees += txn.total_fees
        totals.total_invested_cash += txn.amount * txn.price_per_unit + txn.total_fees

        if state.ledger.open_lot(txn.amount, txn.price_per_unit, txn.total_fees) is None:
            logger.debug(
                f"Zero-amount buy of quote {txn.quote_id} on {txn.date}: "
                f"fees recorded, no lot opened"
            )

    def _apply_sell(self, state: PositionState, txn: LedgerTransaction) -> str | None:
        held = state.ledger.held_amount
        if txn.amount > held and self._oversell_policy == OversellPolicy.REJECT:
            raise OversellError(txn.quote_id, requested=txn.amount, held=held, on=txn.date)

        net_proceeds = txn.amount * txn.price_per_unit - txn.total_fees

        totals = state.totals
        totals.realized_cash += net_proceeds
        totals.total_fees += txn.total_fees

        consumed = state.ledger.consume(txn.amount)
        totals.realized_gain += net_proceeds - consumed.cost_consumed

        if consumed.is_oversell:
            warning = (
                f"Sell of {txn.amount} units of quote {txn.quote_id} on {txn.date} "
                f"exceeds held amount {held}; {consumed.unfilled_amount} units ignored"
            )
            logger.warning(warning)
            return warning
        return None

    def _apply_dividend(self, state: PositionState, txn: LedgerTransaction) -> None:
        state.totals.realized_cash += txn.amount
        state.totals.realized_gain += txn.amount
