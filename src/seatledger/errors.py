"""Error taxonomy for the seat ledger.

Every failure raised by a ledger component is a LedgerError subclass with
a stable ``code`` (the class name) and a ``category``:

- not-found:        the course id is unknown.
- unauthorized:     the caller lacks the role an operation requires.
- invalid-input:    out-of-range marks, zero capacity, mismatched batches.
- state-conflict:   the request contradicts current ledger state.
- external-failure: a custody or payment collaborator refused the call.

The builtin bases (LookupError, ValueError, RuntimeError) are kept so
callers that already catch those continue to work.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional


class LedgerError(Exception):
    """Base class for all ledger failures."""
    category = "ledger"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def code(self) -> str:
        return type(self).__name__


# ---------------------------------------------------------------------------
# not-found
# ---------------------------------------------------------------------------

class CourseNotFound(LedgerError, LookupError):
    category = "not-found"

    def __init__(self, course_id: int) -> None:
        super().__init__(f"Course not found: {course_id}", course_id=course_id)
        self.course_id = course_id


# ---------------------------------------------------------------------------
# unauthorized
# ---------------------------------------------------------------------------

class Unauthorized(LedgerError):
    category = "unauthorized"

    def __init__(self, identity: str, role: Any) -> None:
        role_name = getattr(role, "value", role)
        super().__init__(
            f"Unauthorized: {identity!r} lacks role {role_name}",
            identity=identity, role=role_name,
        )


# ---------------------------------------------------------------------------
# invalid-input
# ---------------------------------------------------------------------------

class InvalidInput(LedgerError, ValueError):
    category = "invalid-input"


class IllegalMark(InvalidInput):
    def __init__(self, mark: int) -> None:
        super().__init__(f"Illegal mark {mark}: must be between 1 and 10", mark=mark)


class InvalidCapacity(InvalidInput):
    def __init__(self, capacity: int) -> None:
        super().__init__(
            f"Invalid evaluator capacity {capacity}: must be greater than zero",
            capacity=capacity,
        )


class ParamLengthMismatch(InvalidInput):
    def __init__(self, **lengths: int) -> None:
        shown = ", ".join(f"{k}={v}" for k, v in lengths.items())
        super().__init__(f"Parameter length mismatch: {shown}", **lengths)


class InsufficientPayment(InvalidInput):
    def __init__(self, required: Decimal, given: Decimal) -> None:
        super().__init__(
            f"Insufficient payment: required {required}, given {given}",
            required=str(required), given=str(given),
        )
        self.required = required
        self.given = given


# ---------------------------------------------------------------------------
# state-conflict
# ---------------------------------------------------------------------------

class StateConflict(LedgerError, ValueError):
    category = "state-conflict"


class EvaluatorAlreadyAssigned(StateConflict):
    def __init__(self, course_id: int, evaluator: str) -> None:
        super().__init__(
            f"Evaluator {evaluator!r} already assigned to course {course_id}",
            course_id=course_id, evaluator=evaluator,
        )


class EvaluatorNotAssigned(StateConflict):
    def __init__(self, course_id: int, evaluator: str) -> None:
        super().__init__(
            f"Evaluator {evaluator!r} is not assigned to course {course_id}",
            course_id=course_id, evaluator=evaluator,
        )


class EvaluatorNotAssignedToCourse(StateConflict):
    def __init__(self, course_id: int, evaluator: str) -> None:
        super().__init__(
            f"Caller {evaluator!r} is not an evaluator of course {course_id}",
            course_id=course_id, evaluator=evaluator,
        )


class TooManyEvaluators(StateConflict):
    def __init__(self, course_id: int, limit: int) -> None:
        super().__init__(
            f"Course {course_id} already has the maximum of {limit} evaluators",
            course_id=course_id, limit=limit,
        )


class NoCoursesForUser(StateConflict):
    def __init__(self, student: str) -> None:
        super().__init__(f"Student {student!r} has no enrolled courses", student=student)


class CourseNotRegisteredForStudent(StateConflict):
    def __init__(self, course_id: int, student: str) -> None:
        super().__init__(
            f"Student {student!r} is not enrolled in course {course_id}",
            course_id=course_id, student=student,
        )


class CounterUnderflow(StateConflict):
    def __init__(self, course_id: int, current: int, requested: int) -> None:
        super().__init__(
            f"Seat counter underflow on course {course_id}: "
            f"{current} available, {requested} requested",
            course_id=course_id, current=current, requested=requested,
        )


class CourseAlreadyFinalized(StateConflict):
    def __init__(self, course_id: int) -> None:
        super().__init__(f"Course {course_id} is already finalized", course_id=course_id)


class SeatsUnavailable(StateConflict):
    def __init__(self, course_id: int, created: int) -> None:
        super().__init__(
            f"All {created} seats of course {course_id} are sold",
            course_id=course_id, created=created,
        )


# ---------------------------------------------------------------------------
# external-failure
# ---------------------------------------------------------------------------

class ExternalFailure(LedgerError, RuntimeError):
    category = "external-failure"


class CustodyError(ExternalFailure):
    pass


class PaymentError(ExternalFailure):
    pass


class WithdrawalFailed(ExternalFailure):
    def __init__(self, to: str, amount: Decimal, reason: Optional[str] = None) -> None:
        msg = f"Withdrawal of {amount} to {to!r} failed"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, to=to, amount=str(amount))
