"""Course and evaluator registries."""

from seatledger.registry.courses import CourseRegistry
from seatledger.registry.evaluators import EvaluatorAssignment

__all__ = [
    "CourseRegistry",
    "EvaluatorAssignment",
]
