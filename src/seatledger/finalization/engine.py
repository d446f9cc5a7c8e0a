"""Finalization engine — closes a course and settles every seat.

Closing a course partitions its seats:

    unsold seats           -> reclaimed (burned from the caller)
    mark <  6              -> reclaimed (burned from the student)
    mark >= 6              -> kept; course metadata relabeled as certificate

Steps, in order:
    1. unsold = seats_created - purchased_seats
    2. reclaim_seats([course], [unsold])
    3. walk evaluation entries in recorded order; reclaim one seat per
       failing entry, set certificate metadata per passing entry
    4. mark the course finalized

``plan()`` checks every precondition up front so ``finalize_course()``
does not start reclaiming on a course that cannot be settled:
    - the course exists and is not already finalized
    - seats_created >= purchased_seats (no oversold course)
    - the remaining seats cover every failing reclaim

A finalized course cannot be finalized again (CourseAlreadyFinalized).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from seatledger.custody.tokens import TokenCustody
from seatledger.enrollment.ledger import EnrollmentLedger
from seatledger.errors import CounterUnderflow, CourseAlreadyFinalized
from seatledger.evaluation.record import EvaluationRecord
from seatledger.models.course import FinalizationResult
from seatledger.registry.courses import CourseRegistry


@dataclass(frozen=True)
class FinalizationPlan:
    """Precomputed settlement for one course."""
    course_id: int
    seats_created: int
    purchased_seats: int
    unsold: int
    failed_students: Tuple[str, ...]
    certified_students: Tuple[str, ...]
    units_per_failure: int

    @property
    def seats_after(self) -> int:
        return (
            self.seats_created
            - self.unsold
            - len(self.failed_students) * self.units_per_failure
        )


class FinalizationEngine:
    """Reconciles seat counters against evaluation outcomes.

    Usage:
        engine = FinalizationEngine(courses, enrollment, evaluations, custody)
        result = engine.finalize_course("admin", 1, "cert-1.json")
    """

    def __init__(
        self,
        courses: CourseRegistry,
        enrollment: EnrollmentLedger,
        evaluations: EvaluationRecord,
        custody: TokenCustody,
        legacy_double_reclaim: bool = False,
    ) -> None:
        self._courses = courses
        self._enrollment = enrollment
        self._evaluations = evaluations
        self._custody = custody
        self._units_per_failure = 2 if legacy_double_reclaim else 1

    def plan(self, course_id: int) -> FinalizationPlan:
        course = self._courses.require(course_id)
        if course.finalized:
            raise CourseAlreadyFinalized(course_id)
        created = course.seats_created
        purchased = self._enrollment.get_purchased_seats(course_id)
        if created < purchased:
            raise CounterUnderflow(course_id, created, purchased)

        failed: List[str] = []
        certified: List[str] = []
        for entry in self._evaluations.get_evaluation_entries(course_id):
            if entry.earns_certificate:
                certified.append(entry.student)
            else:
                failed.append(entry.student)

        reclaim_needed = len(failed) * self._units_per_failure
        if purchased < reclaim_needed:
            raise CounterUnderflow(course_id, purchased, reclaim_needed)

        return FinalizationPlan(
            course_id=course_id,
            seats_created=created,
            purchased_seats=purchased,
            unsold=created - purchased,
            failed_students=tuple(failed),
            certified_students=tuple(certified),
            units_per_failure=self._units_per_failure,
        )

    def finalize_course(
        self,
        caller: str,
        course_id: int,
        certificate_metadata_ref: str,
    ) -> FinalizationResult:
        """Settle every seat of a course. See module docstring for the steps.

        Not atomic on its own: a custody failure midway leaves earlier
        steps applied. Run it inside a service transaction.
        """
        plan = self.plan(course_id)

        self._enrollment.reclaim_seats([course_id], [plan.unsold])
        self._custody.burn_batch(caller, [course_id], [plan.unsold])

        for entry in self._evaluations.get_evaluation_entries(course_id):
            if entry.earns_certificate:
                self._courses.set_certificate_metadata(course_id, certificate_metadata_ref)
            else:
                self._enrollment.reclaim_failed_student_seat(entry.student, course_id, 1)
                self._custody.burn(entry.student, course_id, 1)

        self._courses.mark_finalized(course_id)
        return FinalizationResult(
            course_id=course_id,
            unsold_reclaimed=plan.unsold,
            failed_students=plan.failed_students,
            certified_students=plan.certified_students,
            seats_remaining=self._courses.get_created_seats(course_id),
            metadata_ref=self._courses.get_metadata_ref(course_id),
        )
