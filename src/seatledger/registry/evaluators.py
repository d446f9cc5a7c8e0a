"""Evaluator assignment — bounded set of evaluators per course.

Invariant: a course never gains an evaluator while it already holds
``max_evaluators_amount`` of them. Lowering the cap does not evict
anyone; it only blocks further assignments until the set shrinks.
"""

from __future__ import annotations

from typing import Any, Dict, List

from seatledger.config import DEFAULT_MAX_EVALUATORS
from seatledger.errors import (
    EvaluatorAlreadyAssigned,
    EvaluatorNotAssigned,
    InvalidCapacity,
    InvalidInput,
    TooManyEvaluators,
)
from seatledger.registry.courses import CourseRegistry


class EvaluatorAssignment:
    """Per-course evaluator sets, bounded by a process-wide cap."""

    def __init__(
        self,
        courses: CourseRegistry,
        max_evaluators_amount: int = DEFAULT_MAX_EVALUATORS,
    ) -> None:
        if max_evaluators_amount <= 0:
            raise InvalidCapacity(max_evaluators_amount)
        self._courses = courses
        self._max = max_evaluators_amount
        # Lists keep assignment order for get_evaluators; membership is unique.
        self._evaluators: Dict[int, List[str]] = {}

    @property
    def max_evaluators_amount(self) -> int:
        return self._max

    def set_max_evaluators_amount(self, amount: int) -> None:
        if amount <= 0:
            raise InvalidCapacity(amount)
        self._max = amount

    def assign_evaluator(self, course_id: int, evaluator: str) -> None:
        self._courses.require(course_id)
        if not evaluator or not evaluator.strip():
            raise InvalidInput("Evaluator identity must not be blank")
        members = self._evaluators.setdefault(course_id, [])
        if evaluator in members:
            raise EvaluatorAlreadyAssigned(course_id, evaluator)
        if len(members) >= self._max:
            raise TooManyEvaluators(course_id, self._max)
        members.append(evaluator)

    def unassign_evaluator(self, course_id: int, evaluator: str) -> None:
        members = self._evaluators.get(course_id, [])
        if evaluator not in members:
            raise EvaluatorNotAssigned(course_id, evaluator)
        members.remove(evaluator)

    def get_evaluators(self, course_id: int) -> List[str]:
        self._courses.require(course_id)
        return list(self._evaluators.get(course_id, []))

    def is_assigned(self, course_id: int, evaluator: str) -> bool:
        return evaluator in self._evaluators.get(course_id, [])

    def snapshot(self) -> Dict[str, Any]:
        return {
            "max_evaluators_amount": self._max,
            "evaluators": {str(cid): list(m) for cid, m in self._evaluators.items()},
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self._max = int(state.get("max_evaluators_amount", self._max))
        self._evaluators = {
            int(cid): list(members)
            for cid, members in state.get("evaluators", {}).items()
        }
