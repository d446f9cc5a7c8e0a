"""Course registry — owns course definitions and the seats-created counter.

The registry is a pure state holder: it never talks to token custody or
the audit log. Minting the created units and recording events is the
service layer's job.

Read accessors follow the legacy ledger: an unknown course id yields a
zero value (None / 0 / Decimal 0 / "") instead of an error. Operations
that mutate a course use ``require()``, which raises CourseNotFound.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from seatledger.errors import (
    CounterUnderflow,
    CourseAlreadyFinalized,
    CourseNotFound,
    InvalidInput,
    ParamLengthMismatch,
)
from seatledger.models.course import Course


class CourseRegistry:
    """Registry of courses keyed by integer id.

    Usage:
        registry = CourseRegistry()
        registry.create_courses("admin", [1, 2], [3, 5], ["a", "b"], [0, 0])
        registry.get_created_seats(1)   # 3
    """

    def __init__(self) -> None:
        self._courses: Dict[int, Course] = {}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_courses(
        self,
        creator: str,
        ids: Sequence[int],
        seat_counts: Sequence[int],
        metadata_refs: Sequence[str],
        fees: Sequence[Decimal],
    ) -> int:
        """Create new courses or top up existing ones.

        Every input is validated before the first course is touched.
        Repeated ids in one batch accumulate their seat counts; the last
        occurrence wins for metadata and fee.

        Returns:
            The number of entries processed.
        """
        if not (len(ids) == len(seat_counts) == len(metadata_refs) == len(fees)):
            raise ParamLengthMismatch(
                ids=len(ids),
                seat_counts=len(seat_counts),
                metadata_refs=len(metadata_refs),
                fees=len(fees),
            )
        if not creator or not creator.strip():
            raise InvalidInput("Creator identity must not be blank")

        normalized_fees: List[Decimal] = []
        for course_id, seats, fee in zip(ids, seat_counts, fees):
            if course_id < 0:
                raise InvalidInput(f"Course id must be non-negative, got {course_id}")
            if seats < 0:
                raise InvalidInput(
                    f"Seat count for course {course_id} must be non-negative, got {seats}"
                )
            fee = Decimal(fee)
            if fee < 0:
                raise InvalidInput(
                    f"Fee for course {course_id} must be non-negative, got {fee}"
                )
            existing = self._courses.get(course_id)
            if existing is not None and existing.finalized:
                raise CourseAlreadyFinalized(course_id)
            normalized_fees.append(fee)

        for course_id, seats, ref, fee in zip(ids, seat_counts, metadata_refs, normalized_fees):
            course = self._courses.get(course_id)
            if course is None:
                course = Course(course_id=course_id)
                self._courses[course_id] = course
            course.seats_created += seats
            course.metadata_ref = ref
            course.fee = fee
            course.creator = creator
        return len(ids)

    def set_certificate_metadata(self, course_id: int, ref: str) -> None:
        """Relabel a course's metadata. Shared by every seat of the course."""
        self.require(course_id).metadata_ref = ref

    def reduce_seats(self, course_id: int, count: int) -> int:
        """Decrement seats_created, refusing to go below zero.

        Returns the new seat count.
        """
        course = self.require(course_id)
        if count < 0:
            raise InvalidInput(f"Reclaim count must be non-negative, got {count}")
        if course.seats_created < count:
            raise CounterUnderflow(course_id, course.seats_created, count)
        course.seats_created -= count
        return course.seats_created

    def mark_finalized(self, course_id: int) -> None:
        course = self.require(course_id)
        if course.finalized:
            raise CourseAlreadyFinalized(course_id)
        course.finalized = True

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def exists(self, course_id: int) -> bool:
        course = self._courses.get(course_id)
        return course is not None and course.exists

    def require(self, course_id: int) -> Course:
        """Return the course or raise CourseNotFound."""
        course = self._courses.get(course_id)
        if course is None or not course.exists:
            raise CourseNotFound(course_id)
        return course

    def get(self, course_id: int) -> Optional[Course]:
        return self._courses.get(course_id)

    def course_ids(self) -> List[int]:
        return sorted(self._courses)

    def get_course_creator(self, course_id: int) -> Optional[str]:
        course = self._courses.get(course_id)
        return course.creator if course else None

    def get_created_seats(self, course_id: int) -> int:
        course = self._courses.get(course_id)
        return course.seats_created if course else 0

    def get_fee(self, course_id: int) -> Decimal:
        course = self._courses.get(course_id)
        return course.fee if course else Decimal("0")

    def get_metadata_ref(self, course_id: int) -> str:
        course = self._courses.get(course_id)
        return course.metadata_ref if course else ""

    def is_finalized(self, course_id: int) -> bool:
        course = self._courses.get(course_id)
        return course.finalized if course else False

    # ------------------------------------------------------------------
    # State snapshot (transactions and persistence)
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return {"courses": [c.to_dict() for c in self._courses.values()]}

    def restore(self, state: Dict[str, Any]) -> None:
        self._courses = {}
        for data in state.get("courses", []):
            course = Course.from_dict(data)
            self._courses[course.course_id] = course
