"""Seat ledger service — unified facade over the course ledger.

This is the primary interface for programmatic access. It wires the
components together and owns the rules the components cannot enforce
alone:

- Role gating: each operation declares its role with @requires_role.
- Serialization: one re-entrant lock; mutations never interleave.
- Atomicity: every mutation runs as one transaction. Component state is
  snapshotted, custody calls are journaled, payments and role grants
  push undo steps. Any failure restores the snapshot, compensates
  custody and runs the undo steps newest first.
- Audit: every committed mutation appends one event to the event log.
  If the append fails the transaction is rolled back (fail closed).
- Persistence: after the audit event is written, state is saved to the
  state store when one is wired. A save failure at that point does not
  roll back (the audit trail already holds the change); the service is
  flagged ``persistence_degraded`` and the result carries a warning.

Usage:
    config = LedgerConfig.from_config_dir(config_dir)
    service = SeatLedgerService(config, admin="registrar")

    service.create_courses("registrar", [1], [30], ["course-1.json"], [Decimal("50")])
    service.assign_evaluator("registrar", 1, "prof")
    service.purchase_seat("alice", 1, Decimal("50"))
    service.transfer_seat("registrar", "alice", 1)
    service.evaluate("prof", 1, "alice", 8)
    service.finalize_course("registrar", 1, "certificate-1.json")
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Sequence

from seatledger.access.roles import AccessControl, RoleRegistry, requires_role
from seatledger.config import LedgerConfig
from seatledger.custody.tokens import CustodyJournal, InMemoryTokenCustody, TokenCustody
from seatledger.custody.treasury import InMemoryTreasury, PaymentCollector
from seatledger.enrollment.ledger import EnrollmentLedger
from seatledger.errors import InvalidInput, LedgerError, Unauthorized
from seatledger.evaluation.record import EvaluationRecord
from seatledger.finalization.engine import FinalizationEngine
from seatledger.metadata import MetadataResolver
from seatledger.models.course import EvaluationEntry, Role
from seatledger.persistence.event_log import EventKind, EventLog, EventRecord
from seatledger.persistence.state_store import StateStore
from seatledger.registry.courses import CourseRegistry
from seatledger.registry.evaluators import EvaluatorAssignment


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None


# (result data, event payload). A None payload means nothing to audit.
_Outcome = tuple[dict[str, Any], Optional[dict[str, Any]]]


def _to_amount(value: Any) -> Decimal:
    """Convert a fee or payment to Decimal, rejecting junk as InvalidInput."""
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidInput(f"Not a valid amount: {value!r}") from None
    if not amount.is_finite():
        raise InvalidInput(f"Amount must be finite, got {value!r}")
    return amount


class SeatLedgerService:
    """Course seat ledger facade."""

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        admin: Optional[str] = None,
        custody: Optional[TokenCustody] = None,
        treasury: Optional[PaymentCollector] = None,
        access: Optional[AccessControl] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._config = config or LedgerConfig()
        self._lock = threading.RLock()

        self._courses = CourseRegistry()
        self._evaluators = EvaluatorAssignment(
            self._courses, self._config.max_evaluators_amount,
        )
        self._enrollment = EnrollmentLedger(
            self._courses,
            enforce_seat_availability=self._config.enforce_seat_availability,
            legacy_double_reclaim=self._config.legacy_double_reclaim,
        )
        self._evaluations = EvaluationRecord(
            self._enrollment, self._evaluators, keying=self._config.evaluation_keying,
        )

        # External collaborators (in-memory unless supplied)
        self._custody_backend = custody if custody is not None else InMemoryTokenCustody()
        self._custody = CustodyJournal(self._custody_backend)
        self._treasury = treasury if treasury is not None else InMemoryTreasury()
        self._access = access if access is not None else RoleRegistry()

        self._finalizer = FinalizationEngine(
            self._courses,
            self._enrollment,
            self._evaluations,
            self._custody,
            legacy_double_reclaim=self._config.legacy_double_reclaim,
        )
        self._metadata = MetadataResolver(self._courses, self._config.metadata_base_uri)

        self._event_log = event_log if event_log is not None else EventLog()
        self._state_store = state_store
        self._event_counter = self._event_log.count
        self._persistence_degraded = False
        self._undo: list[Callable[[], None]] = []

        if state_store is not None:
            sections = state_store.load()
            if sections is not None:
                self._restore_sections(sections)

        if admin is not None:
            self._access.grant_role(admin, Role.ADMIN)

    # ------------------------------------------------------------------
    # Course registry
    # ------------------------------------------------------------------

    @requires_role(Role.ADMIN)
    def create_courses(
        self,
        caller: str,
        ids: Sequence[int],
        seat_counts: Sequence[int],
        metadata_refs: Sequence[str],
        fees: Sequence[Any],
    ) -> ServiceResult:
        """Create or top up courses and mint their seats to the caller."""
        def _op() -> _Outcome:
            count = self._courses.create_courses(
                caller, ids, seat_counts, metadata_refs, [_to_amount(f) for f in fees],
            )
            self._custody.mint_batch(caller, list(ids), list(seat_counts))
            return {"count": count}, {
                "ids": list(ids),
                "seat_counts": list(seat_counts),
                "metadata_refs": list(metadata_refs),
                "fees": [str(_to_amount(f)) for f in fees],
            }
        return self._transact(caller, EventKind.COURSES_CREATED, _op)

    @requires_role(Role.ADMIN)
    def set_certificate_metadata(
        self, caller: str, course_id: int, ref: str,
    ) -> ServiceResult:
        def _op() -> _Outcome:
            self._courses.set_certificate_metadata(course_id, ref)
            return {"course_id": course_id, "metadata_ref": ref}, {
                "course_id": course_id, "metadata_ref": ref,
            }
        return self._transact(caller, EventKind.CERTIFICATE_METADATA_SET, _op)

    def get_course_creator(self, course_id: int) -> Optional[str]:
        return self._courses.get_course_creator(course_id)

    def get_created_seats(self, course_id: int) -> int:
        return self._courses.get_created_seats(course_id)

    def get_fee(self, course_id: int) -> Decimal:
        return self._courses.get_fee(course_id)

    def get_metadata_ref(self, course_id: int) -> str:
        return self._courses.get_metadata_ref(course_id)

    def is_finalized(self, course_id: int) -> bool:
        return self._courses.is_finalized(course_id)

    def uri(self, course_id: int) -> str:
        """Full metadata URI for a course. Raises CourseNotFound."""
        return self._metadata.uri(course_id)

    # ------------------------------------------------------------------
    # Evaluator assignment
    # ------------------------------------------------------------------

    @requires_role(Role.ADMIN)
    def assign_evaluator(
        self, caller: str, course_id: int, evaluator: str,
    ) -> ServiceResult:
        def _op() -> _Outcome:
            self._evaluators.assign_evaluator(course_id, evaluator)
            self._grant(evaluator, Role.EVALUATOR)
            return {"course_id": course_id, "evaluator": evaluator}, {
                "course_id": course_id, "evaluator": evaluator,
            }
        return self._transact(caller, EventKind.EVALUATOR_ASSIGNED, _op)

    @requires_role(Role.ADMIN)
    def unassign_evaluator(
        self, caller: str, course_id: int, evaluator: str,
    ) -> ServiceResult:
        def _op() -> _Outcome:
            self._evaluators.unassign_evaluator(course_id, evaluator)
            return {"course_id": course_id, "evaluator": evaluator}, {
                "course_id": course_id, "evaluator": evaluator,
            }
        return self._transact(caller, EventKind.EVALUATOR_UNASSIGNED, _op)

    @requires_role(Role.ADMIN)
    def set_max_evaluators_amount(self, caller: str, amount: int) -> ServiceResult:
        def _op() -> _Outcome:
            previous = self._evaluators.max_evaluators_amount
            self._evaluators.set_max_evaluators_amount(amount)
            return {"max_evaluators_amount": amount}, {
                "previous": previous, "max_evaluators_amount": amount,
            }
        return self._transact(caller, EventKind.MAX_EVALUATORS_CHANGED, _op)

    def get_evaluators(self, course_id: int) -> list[str]:
        """Evaluators of a course in assignment order. Raises CourseNotFound."""
        return self._evaluators.get_evaluators(course_id)

    @property
    def max_evaluators_amount(self) -> int:
        return self._evaluators.max_evaluators_amount

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    @requires_role(None)
    def purchase_seat(self, caller: str, course_id: int, payment: Any) -> ServiceResult:
        """Buy one seat. Public; the buyer is granted the STUDENT role."""
        def _op() -> _Outcome:
            amount = _to_amount(payment)
            self._enrollment.purchase_seat(caller, course_id, amount)
            self._treasury.collect(caller, amount)
            self._undo.append(lambda: self._treasury.refund(caller, amount))
            self._grant(caller, Role.STUDENT)
            purchased = self._enrollment.get_purchased_seats(course_id)
            return {
                "course_id": course_id, "student": caller, "purchased_seats": purchased,
            }, {
                "course_id": course_id, "student": caller, "payment": str(amount),
            }
        return self._transact(caller, EventKind.SEAT_PURCHASED, _op)

    @requires_role(Role.ADMIN)
    def transfer_seat(self, caller: str, student: str, course_id: int) -> ServiceResult:
        """Move one seat unit from the course creator to a student."""
        def _op() -> _Outcome:
            holder = self._enrollment.transfer_seat(student, course_id)
            self._custody.transfer(holder, student, course_id, 1)
            return {"course_id": course_id, "student": student}, {
                "course_id": course_id, "from": holder, "to": student,
            }
        return self._transact(caller, EventKind.SEAT_TRANSFERRED, _op)

    @requires_role(Role.ADMIN)
    def reclaim_seats(
        self, caller: str, course_ids: Sequence[int], counts: Sequence[int],
    ) -> ServiceResult:
        """Reduce seats_created and burn the units held by the caller."""
        def _op() -> _Outcome:
            self._enrollment.reclaim_seats(course_ids, counts)
            self._custody.burn_batch(caller, list(course_ids), list(counts))
            return {"course_ids": list(course_ids), "counts": list(counts)}, {
                "course_ids": list(course_ids), "counts": list(counts),
            }
        return self._transact(caller, EventKind.SEATS_RECLAIMED, _op)

    @requires_role(Role.ADMIN)
    def reclaim_failed_student_seat(
        self, caller: str, student: str, course_id: int, count: int = 1,
    ) -> ServiceResult:
        def _op() -> _Outcome:
            removed = self._enrollment.reclaim_failed_student_seat(student, course_id, count)
            self._custody.burn(student, course_id, count)
            return {"course_id": course_id, "student": student, "seats_removed": removed}, {
                "course_id": course_id, "student": student,
                "count": count, "seats_removed": removed,
            }
        return self._transact(caller, EventKind.FAILED_SEAT_RECLAIMED, _op)

    def get_enrolled_students(self, course_id: int) -> list[str]:
        return self._enrollment.get_enrolled_students(course_id)

    def get_courses_for_student(self, student: str) -> list[int]:
        return self._enrollment.get_courses_for_student(student)

    def get_purchased_seats(self, course_id: int) -> int:
        return self._enrollment.get_purchased_seats(course_id)

    def seat_balance(self, owner: str, course_id: int) -> int:
        return self._custody_backend.balance_of(owner, course_id)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    @requires_role(Role.EVALUATOR)
    def evaluate(
        self, caller: str, course_id: int, student: str, mark: int,
    ) -> ServiceResult:
        """Record a mark; emits EVALUATION_COMPLETED on success."""
        def _op() -> _Outcome:
            matched = self._evaluations.evaluate(caller, course_id, student, mark)
            return {
                "matched": matched, "course_id": course_id,
                "student": student, "mark": mark,
            }, {"course_id": course_id, "student": student, "mark": mark}
        return self._transact(caller, EventKind.EVALUATION_COMPLETED, _op)

    def get_evaluation_entries(self, course_id: int) -> list[EvaluationEntry]:
        return self._evaluations.get_evaluation_entries(course_id)

    def get_evaluation_count(self, course_id: int) -> int:
        return self._evaluations.get_evaluation_count(course_id)

    def get_passed_count(self, course_id: int) -> int:
        return self._evaluations.get_passed_count(course_id)

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    @requires_role(Role.ADMIN)
    def finalize_course(
        self, caller: str, course_id: int, certificate_metadata_ref: str,
    ) -> ServiceResult:
        """Close a course: reclaim unsold and failed seats, relabel passes."""
        def _op() -> _Outcome:
            result = self._finalizer.finalize_course(
                caller, course_id, certificate_metadata_ref,
            )
            data = result.to_dict()
            return data, dict(data)
        return self._transact(caller, EventKind.COURSE_FINALIZED, _op)

    # ------------------------------------------------------------------
    # Treasury
    # ------------------------------------------------------------------

    @requires_role(Role.ADMIN)
    def withdraw(self, caller: str) -> ServiceResult:
        """Sweep collected payments to the caller."""
        def _op() -> _Outcome:
            amount = self._treasury.withdraw(caller)
            return {"amount": str(amount)}, {"to": caller, "amount": str(amount)}
        return self._transact(caller, EventKind.FUNDS_WITHDRAWN, _op, reversible=False)

    @property
    def treasury_balance(self) -> Decimal:
        return self._treasury.balance

    # ------------------------------------------------------------------
    # Roles and status
    # ------------------------------------------------------------------

    def has_role(self, identity: str, role: Role) -> bool:
        return self._access.has_role(identity, role)

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    def status(self) -> dict[str, Any]:
        """Return a ledger-wide summary."""
        with self._lock:
            course_ids = self._courses.course_ids()
            return {
                "courses": {
                    "total": len(course_ids),
                    "finalized": sum(1 for c in course_ids if self._courses.is_finalized(c)),
                    "seats_created": sum(self._courses.get_created_seats(c) for c in course_ids),
                    "seats_purchased": sum(
                        self._enrollment.get_purchased_seats(c) for c in course_ids
                    ),
                },
                "max_evaluators_amount": self._evaluators.max_evaluators_amount,
                "evaluation_keying": self._config.evaluation_keying.value,
                "treasury_balance": str(self._treasury.balance),
                "events": self._event_log.count,
                "persistence_degraded": self._persistence_degraded,
            }

    def course_summary(self, course_id: int) -> dict[str, Any]:
        """Everything known about one course. Raises CourseNotFound."""
        with self._lock:
            course = self._courses.require(course_id)
            return {
                "course_id": course_id,
                "creator": course.creator,
                "fee": str(course.fee),
                "seats_created": course.seats_created,
                "purchased_seats": self._enrollment.get_purchased_seats(course_id),
                "metadata_ref": course.metadata_ref,
                "uri": self._metadata.uri(course_id),
                "finalized": course.finalized,
                "evaluators": self._evaluators.get_evaluators(course_id),
                "enrolled_students": self._enrollment.get_enrolled_students(course_id),
                "evaluations": [
                    e.to_dict() for e in self._evaluations.get_evaluation_entries(course_id)
                ],
                "passed_count": self._evaluations.get_passed_count(course_id),
            }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _authorize(self, caller: str, role: Role) -> Optional[ServiceResult]:
        if self._access.has_role(caller, role):
            return None
        err = Unauthorized(caller, role)
        logger.warning("Denied %s: %s", role.value, err.message)
        return ServiceResult(success=False, errors=[err.message], error_code=err.code)

    def _grant(self, identity: str, role: Role) -> None:
        """Grant a role inside a transaction, undone on rollback."""
        if self._access.has_role(identity, role):
            return
        self._access.grant_role(identity, role)
        self._undo.append(lambda: self._access.revoke_role(identity, role))

    def _transact(
        self,
        caller: str,
        kind: EventKind,
        op: Callable[[], _Outcome],
        reversible: bool = True,
    ) -> ServiceResult:
        """Run one mutation as an all-or-nothing transaction.

        ``reversible=False`` marks operations whose external effect cannot
        be undone once it succeeded (money sent out). For those an audit
        failure is reported as a warning instead of a rollback.
        """
        with self._lock:
            before = self._ledger_sections()
            self._undo = []
            try:
                data, payload = op()
            except LedgerError as e:
                self._rollback(before)
                logger.info("%s rejected for %s: %s", kind.value, caller, e.message)
                return ServiceResult(success=False, errors=[e.message], error_code=e.code)
            except Exception:
                self._rollback(before)
                logger.exception("%s failed for %s; rolled back", kind.value, caller)
                raise

            warnings: list[str] = []
            if payload is not None:
                err = self._record_event(kind, caller, payload)
                if err and reversible:
                    self._rollback(before)
                    logger.error("%s rolled back: %s", kind.value, err)
                    return ServiceResult(
                        success=False, errors=[err], error_code="AuditFailure",
                    )
                if err:
                    warnings.append(err)

            self._custody.commit()
            self._undo = []
            persist_warning = self._safe_persist_post_audit()
            if persist_warning:
                warnings.append(persist_warning)
            if warnings:
                data = dict(data, warning="; ".join(warnings))
            logger.debug("%s committed for %s", kind.value, caller)
            return ServiceResult(success=True, data=data)

    def _rollback(self, before: dict[str, Any]) -> None:
        self._restore_ledger(before)
        self._custody.compensate()
        while self._undo:
            self._undo.pop()()

    def _ledger_sections(self) -> dict[str, Any]:
        return {
            "courses": self._courses.snapshot(),
            "evaluators": self._evaluators.snapshot(),
            "enrollment": self._enrollment.snapshot(),
            "evaluations": self._evaluations.snapshot(),
        }

    def _restore_ledger(self, sections: dict[str, Any]) -> None:
        self._courses.restore(sections["courses"])
        self._evaluators.restore(sections["evaluators"])
        self._enrollment.restore(sections["enrollment"])
        self._evaluations.restore(sections["evaluations"])

    def _all_sections(self) -> dict[str, Any]:
        sections = self._ledger_sections()
        for name, component in (
            ("roles", self._access),
            ("custody", self._custody_backend),
            ("treasury", self._treasury),
        ):
            snapshot = getattr(component, "snapshot", None)
            if snapshot is not None:
                sections[name] = snapshot()
        return sections

    def _restore_sections(self, sections: dict[str, Any]) -> None:
        self._restore_ledger(sections)
        for name, component in (
            ("roles", self._access),
            ("custody", self._custody_backend),
            ("treasury", self._treasury),
        ):
            restore = getattr(component, "restore", None)
            if restore is not None and name in sections:
                restore(sections[name])

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_event(
        self, kind: EventKind, actor_id: str, payload: dict[str, Any],
    ) -> Optional[str]:
        """Append an audit event. Returns error string or None."""
        try:
            event = EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=actor_id,
                payload=payload,
            )
            self._event_log.append(event)
        except (ValueError, OSError) as e:
            return f"Event log failure: {e}"
        return None

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after the audit event has been committed.

        Does not roll back: the audit trail already holds the change.
        On failure sets the persistence_degraded flag and returns a warning.
        """
        if self._state_store is None:
            return None
        try:
            self._state_store.save(self._all_sections())
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error("State store write failed: %s", e)
            return (
                f"Persistence degraded: {e}; state committed in audit trail "
                f"but StateStore is stale"
            )
