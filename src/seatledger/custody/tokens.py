"""Token custody — the contract for whatever holds the seat units.

The ledger never inspects balances to make decisions. It calls custody
exactly where seat counters change:

    create_courses               -> mint_batch(creator, ids, seats)
    transfer_seat                -> transfer(creator, student, id, 1)
    reclaim_seats                -> burn_batch(caller, ids, counts)
    reclaim_failed_student_seat  -> burn(student, id, count)

Any custody backend must implement the TokenCustody Protocol. The
in-memory backend is used by tests and the CLI.

CustodyJournal wraps a backend for the length of one ledger transaction.
It records every successful call so a failed transaction can undo them
in reverse order (burn <-> mint, transfer reversed). Any backend error
(RPC, I/O, bugs) surfaces as CustodyError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Protocol, Sequence, Tuple, runtime_checkable

from seatledger.errors import CustodyError, LedgerError, ParamLengthMismatch


@runtime_checkable
class TokenCustody(Protocol):
    """Abstract contract for seat-unit custody backends."""

    def mint_batch(self, owner: str, ids: Sequence[int], quantities: Sequence[int]) -> None:
        ...

    def burn_batch(self, owner: str, ids: Sequence[int], quantities: Sequence[int]) -> None:
        ...

    def burn(self, owner: str, course_id: int, quantity: int) -> None:
        ...

    def transfer(self, sender: str, recipient: str, course_id: int, quantity: int) -> None:
        ...

    def balance_of(self, owner: str, course_id: int) -> int:
        ...


class InMemoryTokenCustody:
    """Balances per (owner, course id). Burning more than held fails.

    Batch calls are validated in full before any balance moves.
    """

    def __init__(self) -> None:
        self._balances: Dict[Tuple[str, int], int] = {}

    def mint_batch(self, owner: str, ids: Sequence[int], quantities: Sequence[int]) -> None:
        if len(ids) != len(quantities):
            raise ParamLengthMismatch(ids=len(ids), quantities=len(quantities))
        for quantity in quantities:
            self._check_quantity(quantity)
        for course_id, quantity in zip(ids, quantities):
            self._credit(owner, course_id, quantity)

    def burn_batch(self, owner: str, ids: Sequence[int], quantities: Sequence[int]) -> None:
        if len(ids) != len(quantities):
            raise ParamLengthMismatch(ids=len(ids), quantities=len(quantities))
        needed: Dict[int, int] = {}
        for course_id, quantity in zip(ids, quantities):
            self._check_quantity(quantity)
            needed[course_id] = needed.get(course_id, 0) + quantity
        for course_id, quantity in needed.items():
            held = self.balance_of(owner, course_id)
            if held < quantity:
                raise CustodyError(
                    f"Cannot burn {quantity} units of course {course_id} "
                    f"from {owner!r}: holds {held}"
                )
        for course_id, quantity in zip(ids, quantities):
            self._debit(owner, course_id, quantity)

    def burn(self, owner: str, course_id: int, quantity: int) -> None:
        self.burn_batch(owner, [course_id], [quantity])

    def transfer(self, sender: str, recipient: str, course_id: int, quantity: int) -> None:
        self._check_quantity(quantity)
        held = self.balance_of(sender, course_id)
        if held < quantity:
            raise CustodyError(
                f"Cannot transfer {quantity} units of course {course_id} "
                f"from {sender!r}: holds {held}"
            )
        self._debit(sender, course_id, quantity)
        self._credit(recipient, course_id, quantity)

    def balance_of(self, owner: str, course_id: int) -> int:
        return self._balances.get((owner, course_id), 0)

    def total_supply(self, course_id: int) -> int:
        return sum(q for (_, cid), q in self._balances.items() if cid == course_id)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "balances": [
                {"owner": owner, "course_id": cid, "quantity": q}
                for (owner, cid), q in sorted(self._balances.items())
            ]
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self._balances = {
            (row["owner"], int(row["course_id"])): int(row["quantity"])
            for row in state.get("balances", [])
        }

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity < 0:
            raise CustodyError(f"Quantity must be non-negative, got {quantity}")

    def _credit(self, owner: str, course_id: int, quantity: int) -> None:
        key = (owner, course_id)
        self._balances[key] = self._balances.get(key, 0) + quantity

    def _debit(self, owner: str, course_id: int, quantity: int) -> None:
        key = (owner, course_id)
        remaining = self._balances.get(key, 0) - quantity
        if remaining:
            self._balances[key] = remaining
        else:
            self._balances.pop(key, None)


@dataclass(frozen=True)
class CustodyCall:
    """One successful custody call, kept for compensation."""
    op: str
    owner: str
    ids: Tuple[int, ...]
    quantities: Tuple[int, ...]
    recipient: str = ""


class CustodyJournal:
    """Records custody calls made during one transaction.

    Implements TokenCustody by delegation. ``compensate()`` reverses every
    recorded call, newest first. A backend error is re-raised as
    CustodyError so callers see a single external-failure type.
    """

    def __init__(self, backend: TokenCustody) -> None:
        self._backend = backend
        self._calls: List[CustodyCall] = []

    @property
    def calls(self) -> List[CustodyCall]:
        return list(self._calls)

    def mint_batch(self, owner: str, ids: Sequence[int], quantities: Sequence[int]) -> None:
        self._call(self._backend.mint_batch, owner, ids, quantities)
        self._calls.append(CustodyCall("mint", owner, tuple(ids), tuple(quantities)))

    def burn_batch(self, owner: str, ids: Sequence[int], quantities: Sequence[int]) -> None:
        self._call(self._backend.burn_batch, owner, ids, quantities)
        self._calls.append(CustodyCall("burn", owner, tuple(ids), tuple(quantities)))

    def burn(self, owner: str, course_id: int, quantity: int) -> None:
        self._call(self._backend.burn, owner, course_id, quantity)
        self._calls.append(CustodyCall("burn", owner, (course_id,), (quantity,)))

    def transfer(self, sender: str, recipient: str, course_id: int, quantity: int) -> None:
        self._call(self._backend.transfer, sender, recipient, course_id, quantity)
        self._calls.append(
            CustodyCall("transfer", sender, (course_id,), (quantity,), recipient)
        )

    def balance_of(self, owner: str, course_id: int) -> int:
        return self._backend.balance_of(owner, course_id)

    def commit(self) -> None:
        """Forget recorded calls; they are now permanent."""
        self._calls.clear()

    def compensate(self) -> None:
        """Undo recorded calls newest first."""
        while self._calls:
            call = self._calls.pop()
            if call.op == "mint":
                self._backend.burn_batch(call.owner, call.ids, call.quantities)
            elif call.op == "burn":
                self._backend.mint_batch(call.owner, call.ids, call.quantities)
            elif call.op == "transfer":
                self._backend.transfer(
                    call.recipient, call.owner, call.ids[0], call.quantities[0],
                )

    @staticmethod
    def _call(fn: Any, *args: Any) -> None:
        try:
            fn(*args)
        except LedgerError:
            raise
        except Exception as e:
            raise CustodyError(f"Custody call failed: {e}") from e
