"""Data models for the seat ledger."""

from seatledger.models.course import (
    CERTIFICATE_THRESHOLD,
    MAX_MARK,
    MIN_MARK,
    PASS_COUNT_THRESHOLD,
    Course,
    EvaluationEntry,
    EvaluationKeying,
    FinalizationResult,
    Role,
    counts_as_pass,
    earns_certificate,
)

__all__ = [
    "CERTIFICATE_THRESHOLD",
    "MAX_MARK",
    "MIN_MARK",
    "PASS_COUNT_THRESHOLD",
    "Course",
    "EvaluationEntry",
    "EvaluationKeying",
    "FinalizationResult",
    "Role",
    "counts_as_pass",
    "earns_certificate",
]
