"""Append-only event log — the audit trail of every committed ledger change.

Each committed mutation appends one EventRecord. A record is immutable
and carries ``sha256:<hex>`` over its canonical JSON body (sorted keys,
UTF-8). With a storage path the log mirrors itself to a JSONL file, one
record per line, written before the record is accepted in memory.

Reloading re-verifies every line: a body that no longer matches its hash
or an event id seen twice aborts the load with ValueError.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional


class EventKind(str, enum.Enum):
    """Classification of ledger events."""
    COURSES_CREATED = "courses_created"
    CERTIFICATE_METADATA_SET = "certificate_metadata_set"
    EVALUATOR_ASSIGNED = "evaluator_assigned"
    EVALUATOR_UNASSIGNED = "evaluator_unassigned"
    MAX_EVALUATORS_CHANGED = "max_evaluators_changed"
    SEAT_PURCHASED = "seat_purchased"
    SEAT_TRANSFERRED = "seat_transferred"
    SEATS_RECLAIMED = "seats_reclaimed"
    FAILED_SEAT_RECLAIMED = "failed_seat_reclaimed"
    EVALUATION_COMPLETED = "evaluation_completed"
    COURSE_FINALIZED = "course_finalized"
    FUNDS_WITHDRAWN = "funds_withdrawn"


def _digest(body: dict[str, Any]) -> str:
    encoded = json.dumps(body, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return "sha256:" + hashlib.sha256(encoded).hexdigest()


@dataclass(frozen=True)
class EventRecord:
    """A single immutable ledger event."""
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @classmethod
    def create(
        cls,
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        stamp = (timestamp_utc or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = {
            "event_id": event_id,
            "event_kind": event_kind.value,
            "timestamp_utc": stamp,
            "actor_id": actor_id,
            "payload": payload,
        }
        return cls(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=stamp,
            actor_id=actor_id,
            payload=payload,
            event_hash=_digest(body),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventRecord:
        """Rebuild a stored record. Raises ValueError if its hash does not match."""
        body = {k: data[k] for k in ("event_id", "event_kind", "timestamp_utc", "actor_id", "payload")}
        computed = _digest(body)
        if data["event_hash"] != computed:
            raise ValueError(
                f"event {data['event_id']} stored hash {data['event_hash']} "
                f"!= computed {computed}"
            )
        return cls(
            event_id=body["event_id"],
            event_kind=EventKind(body["event_kind"]),
            timestamp_utc=body["timestamp_utc"],
            actor_id=body["actor_id"],
            payload=body["payload"],
            event_hash=computed,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only, optionally file-backed. Nothing is ever edited or removed."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._storage_path = storage_path
        self._records: list[EventRecord] = []
        self._seen: set[str] = set()
        if storage_path is not None and storage_path.exists():
            for line_num, record in self._read(storage_path):
                if record.event_id in self._seen:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {record.event_id}"
                    )
                self._accept(record)

    def append(self, event: EventRecord) -> None:
        """Raises ValueError on a repeated event id, OSError if the file write fails."""
        if event.event_id in self._seen:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        if self._storage_path is not None:
            line = json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False)
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        self._accept(event)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        return [e for e in self._records if kind is None or e.event_kind == kind]

    @property
    def count(self) -> int:
        return len(self._records)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._records[-1] if self._records else None

    def _accept(self, record: EventRecord) -> None:
        self._records.append(record)
        self._seen.add(record.event_id)

    @staticmethod
    def _read(path: Path) -> Iterator[tuple[int, EventRecord]]:
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    record = EventRecord.from_dict(json.loads(line))
                except ValueError as e:
                    raise ValueError(f"Integrity check failed (line {line_num}): {e}") from e
                yield line_num, record
