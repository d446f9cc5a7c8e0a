"""Per-course evaluation entries."""

from seatledger.evaluation.record import EvaluationRecord

__all__ = ["EvaluationRecord"]
