"""Audit log, chain anchoring and state persistence."""

from seatledger.persistence.anchor import AnchorLog, AnchorRecord, event_log_digest
from seatledger.persistence.event_log import EventKind, EventLog, EventRecord
from seatledger.persistence.state_store import StateStore

__all__ = [
    "AnchorLog",
    "AnchorRecord",
    "EventKind",
    "EventLog",
    "EventRecord",
    "StateStore",
    "event_log_digest",
]
