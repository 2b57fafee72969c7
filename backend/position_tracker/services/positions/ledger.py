# backend/position_tracker/services/positions/ledger.py
"""
FIFO lot ledger for a single instrument.

Buys append a lot at the tail; sells consume from the head. The head lot
is decremented in place on a partial fill, so a sell costs O(lots consumed).

Invariants:
    - every queued lot has remaining_amount > 0
    - held_amount == sum of remaining_amount over the queue
"""

from collections import deque
from collections.abc import Iterator
from decimal import Decimal

from position_tracker.services.positions.types import ConsumeResult, Lot, ZERO


class LotLedger:
    """Ordered queue of open cost-basis lots."""

    def __init__(self) -> None:
        self._lots: deque[Lot] = deque()

    def __len__(self) -> int:
        return len(self._lots)

    def __iter__(self) -> Iterator[Lot]:
        return iter(self._lots)

    @property
    def held_amount(self) -> Decimal:
        """Units currently held across all lots."""
        return sum((lot.remaining_amount for lot in self._lots), ZERO)

    @property
    def cost_basis(self) -> Decimal:
        """Sum of remaining_amount × effective_unit_cost over all lots."""
        return sum((lot.cost for lot in self._lots), ZERO)

    def open_lot(self, amount: Decimal, price_per_unit: Decimal, total_fees: Decimal) -> Lot | None:
        """
        Append a lot for a purchase.

        Fees are folded into the unit cost: price_per_unit + total_fees / amount.

        Args:
            amount: Units bought
            price_per_unit: Purchase price per unit
            total_fees: Fees of the purchase

        Returns:
            The new lot, or None when amount is zero (no lot can hold it)
        """
        if amount <= ZERO:
            return None

        lot = Lot(
            remaining_amount=amount,
            effective_unit_cost=price_per_unit + total_fees / amount,
        )
        self._lots.append(lot)
        return lot

    def consume(self, amount: Decimal) -> ConsumeResult:
        """
        Remove units from the oldest lots first.

        Fully used lots are popped from the head; a partially used head lot
        is decremented in place and consumption stops there.

        Args:
            amount: Units to remove

        Returns:
            ConsumeResult with the cost of the removed units and any amount
            that could not be filled because the queue ran empty
        """
        to_consume = amount
        cost_consumed = ZERO

        while to_consume > ZERO and self._lots:
            head = self._lots[0]
            used = min(head.remaining_amount, to_consume)
            cost_consumed += used * head.effective_unit_cost
            to_consume -= used

            if used == head.remaining_amount:
                self._lots.popleft()
            else:
                head.remaining_amount -= used

        return ConsumeResult(
            consumed_amount=amount - to_consume,
            cost_consumed=cost_consumed,
            unfilled_amount=to_consume,
        )
