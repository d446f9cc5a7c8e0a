"""Enrollment ledger — purchased-seat counters and enrollment lists.

Purchases are recorded in two places: an ordered list of students per
course and an ordered list of courses per student. Neither list is
deduplicated; buying the same course twice enrolls the buyer twice and
counts two purchased seats.

Overselling (purchased > created) is allowed unless the ledger is built
with ``enforce_seat_availability=True``.

Like the registries, this class is a pure state holder. Collecting the
payment, burning or moving seat units and writing audit events are done
by the service layer around these calls.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Sequence

from seatledger.errors import (
    CounterUnderflow,
    CourseAlreadyFinalized,
    InsufficientPayment,
    InvalidInput,
    ParamLengthMismatch,
    SeatsUnavailable,
)
from seatledger.registry.courses import CourseRegistry


class EnrollmentLedger:
    """Seat purchases and seat reclaims.

    Usage:
        ledger = EnrollmentLedger(registry)
        ledger.purchase_seat("alice", 1, Decimal("10"))
        ledger.get_purchased_seats(1)      # 1
        ledger.get_enrolled_students(1)    # ["alice"]
    """

    def __init__(
        self,
        courses: CourseRegistry,
        enforce_seat_availability: bool = False,
        legacy_double_reclaim: bool = False,
    ) -> None:
        self._courses = courses
        self._enforce_seat_availability = enforce_seat_availability
        self._legacy_double_reclaim = legacy_double_reclaim
        self._purchased: Dict[int, int] = {}
        self._students_by_course: Dict[int, List[str]] = {}
        self._courses_by_student: Dict[str, List[int]] = {}

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    def purchase_seat(self, buyer: str, course_id: int, payment: Decimal) -> bool:
        """Record a seat purchase.

        Raises:
            CourseNotFound: unknown course.
            CourseAlreadyFinalized: the course is closed.
            InsufficientPayment: payment below the course fee.
            SeatsUnavailable: sold out, only when availability is enforced.
        """
        course = self._courses.require(course_id)
        if course.finalized:
            raise CourseAlreadyFinalized(course_id)
        if not buyer or not buyer.strip():
            raise InvalidInput("Buyer identity must not be blank")
        payment = Decimal(payment)
        if payment < course.fee:
            raise InsufficientPayment(required=course.fee, given=payment)
        purchased = self._purchased.get(course_id, 0)
        if self._enforce_seat_availability and purchased >= course.seats_created:
            raise SeatsUnavailable(course_id, course.seats_created)

        self._courses_by_student.setdefault(buyer, []).append(course_id)
        self._purchased[course_id] = purchased + 1
        self._students_by_course.setdefault(course_id, []).append(buyer)
        return True

    def transfer_seat(self, student: str, course_id: int) -> str:
        """Validate a seat hand-over and return the identity holding the unit.

        Counters are untouched: the purchase was already counted and the
        custody move is carried out by the caller.
        """
        course = self._courses.require(course_id)
        if not student or not student.strip():
            raise InvalidInput("Student identity must not be blank")
        return course.creator

    # ------------------------------------------------------------------
    # Reclaims
    # ------------------------------------------------------------------

    def reclaim_seats(self, course_ids: Sequence[int], counts: Sequence[int]) -> None:
        """Decrement seats_created for each (course, count) pair.

        All decrements are checked against the running totals first, so
        a batch that would underflow any course leaves every counter as
        it was.
        """
        if len(course_ids) != len(counts):
            raise ParamLengthMismatch(course_ids=len(course_ids), counts=len(counts))
        remaining: Dict[int, int] = {}
        for course_id, count in zip(course_ids, counts):
            course = self._courses.require(course_id)
            if count < 0:
                raise InvalidInput(f"Reclaim count must be non-negative, got {count}")
            available = remaining.get(course_id, course.seats_created)
            if available < count:
                raise CounterUnderflow(course_id, available, count)
            remaining[course_id] = available - count
        for course_id, count in zip(course_ids, counts):
            self._courses.reduce_seats(course_id, count)

    def reclaim_failed_student_seat(
        self, student: str, course_id: int, count: int = 1,
    ) -> int:
        """Reclaim the seat(s) held by a student who failed.

        Returns the number of units removed from seats_created, which is
        ``2 * count`` when the legacy double decrement is enabled.
        """
        course = self._courses.require(course_id)
        if count < 0:
            raise InvalidInput(f"Reclaim count must be non-negative, got {count}")
        total = count * 2 if self._legacy_double_reclaim else count
        if course.seats_created < total:
            raise CounterUnderflow(course_id, course.seats_created, total)

        if self._legacy_double_reclaim:
            self._legacy_double_decrement(course_id, count)
        else:
            self._courses.reduce_seats(course_id, count)
        return total

    def _legacy_double_decrement(self, course_id: int, count: int) -> None:
        # The legacy ledger subtracted the count once in the reclaim and
        # again in the burn hook, so every failed seat cost two units.
        self._courses.reduce_seats(course_id, count)
        self._courses.reduce_seats(course_id, count)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_enrolled_students(self, course_id: int) -> List[str]:
        return list(self._students_by_course.get(course_id, []))

    def get_courses_for_student(self, student: str) -> List[int]:
        return list(self._courses_by_student.get(student, []))

    def get_purchased_seats(self, course_id: int) -> int:
        return self._purchased.get(course_id, 0)

    def get_created_seats(self, course_id: int) -> int:
        return self._courses.get_created_seats(course_id)

    def is_finalized(self, course_id: int) -> bool:
        return self._courses.is_finalized(course_id)

    def unsold_seats(self, course_id: int) -> int:
        """seats_created - purchased_seats. Negative when oversold."""
        return self.get_created_seats(course_id) - self.get_purchased_seats(course_id)

    # ------------------------------------------------------------------
    # State snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return {
            "purchased": {str(k): v for k, v in self._purchased.items()},
            "students_by_course": {
                str(k): list(v) for k, v in self._students_by_course.items()
            },
            "courses_by_student": {
                k: list(v) for k, v in self._courses_by_student.items()
            },
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self._purchased = {int(k): int(v) for k, v in state.get("purchased", {}).items()}
        self._students_by_course = {
            int(k): list(v) for k, v in state.get("students_by_course", {}).items()
        }
        self._courses_by_student = {
            k: [int(c) for c in v]
            for k, v in state.get("courses_by_student", {}).items()
        }
