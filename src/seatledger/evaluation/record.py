"""Evaluation record — per-course marks and the running pass count.

Check order for ``evaluate``:
    1. caller is in the course's evaluator set
    2. the course is not finalized
    3. 1 <= mark <= 10
    4. the student has at least one enrolled course
    5. the course appears in the student's course list (first match wins)

The pass counter is bumped for ``mark > PASS_COUNT_THRESHOLD`` before
step 5 fails, matching the legacy ledger. This class does not undo that
bump on failure; the service layer's transaction does.

Entries are append-only. In COURSE keying mode they are filed under the
evaluated course id. In SCAN_INDEX mode they are filed under the position
of the first match in the student's course list, which is what the
legacy ledger did. SCAN_INDEX exists only for bit-for-bit parity.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from seatledger.enrollment.ledger import EnrollmentLedger
from seatledger.errors import (
    CourseAlreadyFinalized,
    CourseNotRegisteredForStudent,
    EvaluatorNotAssignedToCourse,
    IllegalMark,
    NoCoursesForUser,
)
from seatledger.models.course import (
    MAX_MARK,
    MIN_MARK,
    EvaluationEntry,
    EvaluationKeying,
    counts_as_pass,
)
from seatledger.registry.evaluators import EvaluatorAssignment


class EvaluationRecord:
    """Append-only marks per course.

    Usage:
        record = EvaluationRecord(enrollment, evaluators)
        record.evaluate("prof", 1, "alice", 7)
        record.get_evaluation_count(1)   # 1
        record.get_passed_count(1)       # 1
    """

    def __init__(
        self,
        enrollment: EnrollmentLedger,
        evaluators: EvaluatorAssignment,
        keying: EvaluationKeying = EvaluationKeying.COURSE,
    ) -> None:
        self._enrollment = enrollment
        self._evaluators = evaluators
        self._keying = keying
        self._entries: Dict[int, List[EvaluationEntry]] = {}
        self._passed: Dict[int, int] = {}

    @property
    def keying(self) -> EvaluationKeying:
        return self._keying

    def evaluate(
        self,
        evaluator: str,
        course_id: int,
        student: str,
        mark: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """Record a mark for a student enrolled in course_id.

        Returns True when an entry was filed. Failure paths raise.
        """
        if not self._evaluators.is_assigned(course_id, evaluator):
            raise EvaluatorNotAssignedToCourse(course_id, evaluator)
        if self._enrollment.is_finalized(course_id):
            raise CourseAlreadyFinalized(course_id)
        if not MIN_MARK <= mark <= MAX_MARK:
            raise IllegalMark(mark)
        student_courses = self._enrollment.get_courses_for_student(student)
        if not student_courses:
            raise NoCoursesForUser(student)
        if now is None:
            now = datetime.now(timezone.utc)

        matched = False
        for index, enrolled_id in enumerate(student_courses):
            if enrolled_id == course_id:
                key = index if self._keying == EvaluationKeying.SCAN_INDEX else course_id
                self._entries.setdefault(key, []).append(
                    EvaluationEntry(
                        mark=mark,
                        timestamp_utc=now,
                        student=student,
                        evaluator=evaluator,
                    )
                )
                matched = True
                break

        if counts_as_pass(mark):
            self._passed[course_id] = self._passed.get(course_id, 0) + 1

        if not matched:
            raise CourseNotRegisteredForStudent(course_id, student)
        return matched

    def get_evaluation_entries(self, course_id: int) -> List[EvaluationEntry]:
        return list(self._entries.get(course_id, []))

    def get_evaluation_count(self, course_id: int) -> int:
        return len(self._entries.get(course_id, []))

    def get_passed_count(self, course_id: int) -> int:
        return self._passed.get(course_id, 0)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "entries": {
                str(k): [e.to_dict() for e in v] for k, v in self._entries.items()
            },
            "passed": {str(k): v for k, v in self._passed.items()},
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self._entries = {
            int(k): [EvaluationEntry.from_dict(e) for e in v]
            for k, v in state.get("entries", {}).items()
        }
        self._passed = {int(k): int(v) for k, v in state.get("passed", {}).items()}
