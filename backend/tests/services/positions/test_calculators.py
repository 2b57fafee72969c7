# backend/tests/services/positions/test_calculators.py
"""
Tests for PositionState and TransactionApplier.

Covers the accumulator rules of each transaction type and both
oversell policies.
"""

from datetime import date
from decimal import Decimal

import pytest

from position_tracker.services.exceptions import OversellError
from position_tracker.services.positions.calculators import PositionState, TransactionApplier
from position_tracker.services.positions.types import OversellPolicy
from tests.conftest import buy, dividend, sell


D = date(2024, 3, 1)


@pytest.fixture
def applier() -> TransactionApplier:
    return TransactionApplier()


@pytest.fixture
def state() -> PositionState:
    return PositionState(quote_id=1)


class TestBuy:
    """Tests for BUY transactions."""

    def test_buy_updates_totals_and_opens_lot(self, applier, state):
        applier.apply(state, buy(D, "100", "50", "10"))

        assert state.totals.total_fees == Decimal("10")
        assert state.totals.total_invested_cash == Decimal("5010")
        assert state.totals.realized_gain == Decimal("0")
        assert state.ledger.held_amount == Decimal("100")
        assert state.ledger.cost_basis == Decimal("5010")

    def test_zero_amount_buy_still_records_fees(self, applier, state):
        """Fees of a zero-amount buy count even though no lot is opened."""
        applier.apply(state, buy(D, "0", "50", "3"))

        assert state.totals.total_fees == Decimal("3")
        assert state.totals.total_invested_cash == Decimal("3")
        assert len(state.ledger) == 0


class TestSell:
    """Tests for SELL transactions."""

    def test_sell_realizes_fifo_gain(self, applier, state):
        """Fee allocation: buy 100@40+20, sell 60@50+15."""
        applier.apply(state, buy(D, "100", "40", "20"))
        warning = applier.apply(state, sell(D, "60", "50", "15"))

        assert warning is None
        assert state.totals.total_fees == Decimal("35")
        assert state.totals.realized_cash == Decimal("2985")
        assert state.totals.realized_gain == Decimal("573")
        assert state.ledger.held_amount == Decimal("40")
        assert state.ledger.cost_basis == Decimal("1608")

    def test_sell_does_not_reduce_invested_cash(self, applier, state):
        applier.apply(state, buy(D, "10", "10"))
        applier.apply(state, sell(D, "10", "12"))

        assert state.totals.total_invested_cash == Decimal("100")

    def test_oversell_allowed_returns_warning(self, applier, state):
        """Under ALLOW the queue drains and the remainder is ignored."""
        applier.apply(state, buy(D, "10", "10"))

        warning = applier.apply(state, sell(D, "15", "12"))

        assert warning is not None
        assert "exceeds held amount" in warning
        assert state.ledger.held_amount == Decimal("0")
        # Net proceeds of all 15 units minus cost of the 10 units held
        assert state.totals.realized_gain == Decimal("180") - Decimal("100")

    def test_default_policy_allows_oversell(self, applier):
        assert applier.oversell_policy == OversellPolicy.ALLOW

    def test_oversell_rejected_leaves_state_untouched(self, state):
        applier = TransactionApplier(OversellPolicy.REJECT)
        assert applier.oversell_policy == OversellPolicy.REJECT
        applier.apply(state, buy(D, "10", "10", "1"))

        with pytest.raises(OversellError) as exc_info:
            applier.apply(state, sell(date(2024, 3, 5), "15", "12", "2"))

        assert exc_info.value.quote_id == 1
        assert exc_info.value.requested == Decimal("15")
        assert exc_info.value.held == Decimal("10")
        assert exc_info.value.date == date(2024, 3, 5)
        assert state.totals.total_fees == Decimal("1")
        assert state.totals.realized_cash == Decimal("0")
        assert state.ledger.held_amount == Decimal("10")

    def test_reject_policy_allows_selling_everything(self, state):
        applier = TransactionApplier(OversellPolicy.REJECT)
        applier.apply(state, buy(D, "10", "10"))

        assert applier.apply(state, sell(D, "10", "11")) is None
        assert state.ledger.held_amount == Decimal("0")


class TestDividend:
    """Tests for DIVIDEND transactions."""

    def test_dividend_is_realized_cash(self, applier, state):
        applier.apply(state, buy(D, "200", "40", "15"))
        applier.apply(state, dividend(D, "300"))

        assert state.totals.realized_cash == Decimal("300")
        assert state.totals.realized_gain == Decimal("300")
        assert state.totals.total_fees == Decimal("15")
        assert state.ledger.held_amount == Decimal("200")


class TestSnapshot:
    """Tests for PositionState.snapshot()."""

    def test_snapshot_derived_values(self, applier, state):
        applier.apply(state, buy(D, "100", "50", "10"))

        snapshot = state.snapshot("user-1", D, "EUR", Decimal("55"))

        assert snapshot.user_id == "user-1"
        assert snapshot.quote_id == 1
        assert snapshot.currency == "EUR"
        assert snapshot.current_value == Decimal("5500")
        assert snapshot.unrealized_gain == Decimal("490")
        assert snapshot.total_profit == Decimal("490")
