"""Course ledger models — courses, evaluation entries, roles and thresholds.

Seat counts are plain integers and fees are Decimal. No floats in money.

Two pass thresholds, kept as separate constants:
- PASS_COUNT_THRESHOLD: a mark strictly above it bumps the pass counter.
- CERTIFICATE_THRESHOLD: a mark at or above it keeps the seat as a
  certificate at finalization.
A mark of exactly 6 therefore earns a certificate without being counted
as a pass.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional


PASS_COUNT_THRESHOLD = 6
CERTIFICATE_THRESHOLD = 6
MIN_MARK = 1
MAX_MARK = 10


def counts_as_pass(mark: int) -> bool:
    """Whether a mark increments the course's pass counter (mark > 6)."""
    return mark > PASS_COUNT_THRESHOLD


def earns_certificate(mark: int) -> bool:
    """Whether a mark keeps the seat at finalization (mark >= 6)."""
    return mark >= CERTIFICATE_THRESHOLD


class Role(str, enum.Enum):
    """Capabilities an identity can hold."""
    ADMIN = "admin"
    EVALUATOR = "evaluator"
    STUDENT = "student"


class EvaluationKeying(str, enum.Enum):
    """How evaluation entries are filed.

    COURSE files each entry under the evaluated course id.
    SCAN_INDEX files it under the position at which the course was found
    in the student's course list (compatibility with the legacy ledger).
    """
    COURSE = "course"
    SCAN_INDEX = "scan_index"


@dataclass
class Course:
    """A course definition.

    A course exists iff ``creator`` is set. ``seats_created`` grows with
    creation/top-up and shrinks with reclaims; courses are never deleted.
    """
    course_id: int
    fee: Decimal = Decimal("0")
    seats_created: int = 0
    metadata_ref: str = ""
    creator: Optional[str] = None
    finalized: bool = False

    @property
    def exists(self) -> bool:
        return self.creator is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "course_id": self.course_id,
            "fee": str(self.fee),
            "seats_created": self.seats_created,
            "metadata_ref": self.metadata_ref,
            "creator": self.creator,
            "finalized": self.finalized,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Course:
        return Course(
            course_id=int(data["course_id"]),
            fee=Decimal(data["fee"]),
            seats_created=int(data["seats_created"]),
            metadata_ref=data["metadata_ref"],
            creator=data["creator"],
            finalized=bool(data.get("finalized", False)),
        )


@dataclass(frozen=True)
class EvaluationEntry:
    """One recorded mark. Immutable once filed."""
    mark: int
    timestamp_utc: datetime
    student: str
    evaluator: str

    @property
    def earns_certificate(self) -> bool:
        return earns_certificate(self.mark)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mark": self.mark,
            "timestamp_utc": self.timestamp_utc.isoformat(),
            "student": self.student,
            "evaluator": self.evaluator,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> EvaluationEntry:
        return EvaluationEntry(
            mark=int(data["mark"]),
            timestamp_utc=datetime.fromisoformat(data["timestamp_utc"]),
            student=data["student"],
            evaluator=data["evaluator"],
        )


@dataclass(frozen=True)
class FinalizationResult:
    """Outcome of closing a course. Derived, never stored."""
    course_id: int
    unsold_reclaimed: int
    failed_students: tuple[str, ...]
    certified_students: tuple[str, ...]
    seats_remaining: int
    metadata_ref: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "course_id": self.course_id,
            "unsold_reclaimed": self.unsold_reclaimed,
            "failed_students": list(self.failed_students),
            "certified_students": list(self.certified_students),
            "seats_remaining": self.seats_remaining,
            "metadata_ref": self.metadata_ref,
        }
