"""Treasury — collects seat payments and sweeps them out on withdrawal.

The ledger only needs three things from a payment backend: take a
payment with a purchase, give it back if the purchase is rolled back,
and sweep the accumulated balance to an administrator. How the money
actually moves is the backend's business.

InMemoryTreasury delegates the outbound transfer to a payout callable.
If the payout raises or returns False, WithdrawalFailed is raised and
the balance is left untouched.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from seatledger.errors import PaymentError, WithdrawalFailed


Payout = Callable[[str, Decimal], bool]


def _accept_payout(to: str, amount: Decimal) -> bool:
    return True


@runtime_checkable
class PaymentCollector(Protocol):
    """Abstract contract for payment backends."""

    @property
    def balance(self) -> Decimal:
        ...

    def collect(self, payer: str, amount: Decimal) -> None:
        ...

    def refund(self, payer: str, amount: Decimal) -> None:
        ...

    def withdraw(self, to: str) -> Decimal:
        ...


class InMemoryTreasury:
    """Accumulates payments in memory.

    Usage:
        treasury = InMemoryTreasury()
        treasury.collect("alice", Decimal("10"))
        treasury.withdraw("admin")   # Decimal("10")
    """

    def __init__(self, payout: Optional[Payout] = None) -> None:
        self._payout = payout or _accept_payout
        self._balance = Decimal("0")
        self._paid_by: Dict[str, Decimal] = {}

    @property
    def balance(self) -> Decimal:
        return self._balance

    def paid_by(self, payer: str) -> Decimal:
        return self._paid_by.get(payer, Decimal("0"))

    def collect(self, payer: str, amount: Decimal) -> None:
        amount = Decimal(amount)
        if amount < 0:
            raise PaymentError(f"Payment amount must be non-negative, got {amount}")
        self._balance += amount
        self._paid_by[payer] = self.paid_by(payer) + amount

    def refund(self, payer: str, amount: Decimal) -> None:
        amount = Decimal(amount)
        if amount > self._balance:
            raise PaymentError(
                f"Cannot refund {amount} to {payer!r}: treasury holds {self._balance}"
            )
        self._balance -= amount
        self._paid_by[payer] = self.paid_by(payer) - amount

    def withdraw(self, to: str) -> Decimal:
        """Sweep the whole balance to ``to``. Returns the amount sent."""
        amount = self._balance
        try:
            sent = self._payout(to, amount)
        except (OSError, RuntimeError, ValueError) as e:
            raise WithdrawalFailed(to, amount, str(e)) from e
        if not sent:
            raise WithdrawalFailed(to, amount, "payout rejected")
        self._balance = Decimal("0")
        return amount

    def snapshot(self) -> Dict[str, Any]:
        return {
            "balance": str(self._balance),
            "paid_by": {k: str(v) for k, v in self._paid_by.items()},
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self._balance = Decimal(state.get("balance", "0"))
        self._paid_by = {k: Decimal(v) for k, v in state.get("paid_by", {}).items()}
