"""Tests for the service layer — role gating, transactions, audit events."""

import threading
import pytest
from decimal import Decimal
from pathlib import Path

from seatledger.config import LedgerConfig
from seatledger.custody.tokens import InMemoryTokenCustody
from seatledger.custody.treasury import InMemoryTreasury
from seatledger.errors import PaymentError
from seatledger.models.course import EvaluationKeying, Role
from seatledger.persistence.event_log import EventKind, EventLog
from seatledger.service import SeatLedgerService


ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def service() -> SeatLedgerService:
    config = LedgerConfig.from_config_dir(ROOT / "config", environ={})
    return SeatLedgerService(config, admin="admin")


def _course(service: SeatLedgerService, course_id: int = 1, seats: int = 3, fee: str = "10") -> None:
    result = service.create_courses("admin", [course_id], [seats], [f"course-{course_id}.json"], [Decimal(fee)])
    assert result.success, result.errors


def _enroll(service: SeatLedgerService, student: str, course_id: int = 1, fee: str = "10") -> None:
    assert service.purchase_seat(student, course_id, Decimal(fee)).success
    assert service.transfer_seat("admin", student, course_id).success


class TestRoles:
    @pytest.mark.parametrize("name,role", [
        ("create_courses", Role.ADMIN),
        ("set_certificate_metadata", Role.ADMIN),
        ("assign_evaluator", Role.ADMIN),
        ("unassign_evaluator", Role.ADMIN),
        ("set_max_evaluators_amount", Role.ADMIN),
        ("purchase_seat", None),
        ("transfer_seat", Role.ADMIN),
        ("reclaim_seats", Role.ADMIN),
        ("reclaim_failed_student_seat", Role.ADMIN),
        ("evaluate", Role.EVALUATOR),
        ("finalize_course", Role.ADMIN),
        ("withdraw", Role.ADMIN),
    ])
    def test_each_operation_declares_its_role(self, name: str, role) -> None:
        assert getattr(SeatLedgerService, name).required_role == role

    def test_non_admin_cannot_create(self, service: SeatLedgerService) -> None:
        result = service.create_courses("mallory", [1], [3], ["x"], [0])
        assert not result.success
        assert result.error_code == "Unauthorized"
        assert service.get_created_seats(1) == 0
        assert service.event_log.count == 0

    def test_non_evaluator_cannot_evaluate(self, service: SeatLedgerService) -> None:
        _course(service)
        _enroll(service, "alice")
        result = service.evaluate("alice", 1, "alice", 10)
        assert result.error_code == "Unauthorized"

    def test_evaluator_of_other_course_rejected(self, service: SeatLedgerService) -> None:
        _course(service, 1)
        _course(service, 2)
        service.assign_evaluator("admin", 2, "prof")
        _enroll(service, "alice")
        result = service.evaluate("prof", 1, "alice", 7)
        assert result.error_code == "EvaluatorNotAssignedToCourse"

    def test_assignment_grants_evaluator_role(self, service: SeatLedgerService) -> None:
        _course(service)
        service.assign_evaluator("admin", 1, "prof")
        assert service.has_role("prof", Role.EVALUATOR)

    def test_unassign_keeps_role(self, service: SeatLedgerService) -> None:
        _course(service)
        service.assign_evaluator("admin", 1, "prof")
        assert service.unassign_evaluator("admin", 1, "prof").success
        assert service.get_evaluators(1) == []
        assert service.has_role("prof", Role.EVALUATOR)

    def test_purchase_grants_student_role(self, service: SeatLedgerService) -> None:
        _course(service)
        service.purchase_seat("alice", 1, Decimal("10"))
        assert service.has_role("alice", Role.STUDENT)


class TestCourses:
    def test_batch_create(self, service: SeatLedgerService) -> None:
        result = service.create_courses("admin", [1, 2], [3, 5], ["a", "b"], [0, 0])
        assert result.success
        assert result.data["count"] == 2
        assert service.get_created_seats(1) == 3
        assert service.get_created_seats(2) == 5
        assert service.seat_balance("admin", 2) == 5

    def test_length_mismatch(self, service: SeatLedgerService) -> None:
        result = service.create_courses("admin", [1, 2], [3], ["a", "b"], [0, 0])
        assert result.error_code == "ParamLengthMismatch"
        assert service.get_created_seats(1) == 0

    def test_junk_fee_rejected(self, service: SeatLedgerService) -> None:
        result = service.create_courses("admin", [1], [3], ["a"], ["ten"])
        assert result.error_code == "InvalidInput"

    def test_uri_uses_base(self, service: SeatLedgerService) -> None:
        _course(service)
        assert service.uri(1) == "ipfs://course-1.json"

    def test_set_certificate_metadata(self, service: SeatLedgerService) -> None:
        _course(service)
        assert service.set_certificate_metadata("admin", 1, "cert.json").success
        assert service.get_metadata_ref(1) == "cert.json"

    def test_unknown_course(self, service: SeatLedgerService) -> None:
        result = service.set_certificate_metadata("admin", 9, "cert.json")
        assert result.error_code == "CourseNotFound"


class TestEvaluatorCap:
    def test_zero_always_rejected(self, service: SeatLedgerService) -> None:
        for amount in (3, 1):
            assert service.set_max_evaluators_amount("admin", amount).success
            result = service.set_max_evaluators_amount("admin", 0)
            assert result.error_code == "InvalidCapacity"
            assert service.max_evaluators_amount == amount

    def test_cap_enforced(self, service: SeatLedgerService) -> None:
        _course(service)
        service.set_max_evaluators_amount("admin", 1)
        service.assign_evaluator("admin", 1, "e1")
        result = service.assign_evaluator("admin", 1, "e2")
        assert result.error_code == "TooManyEvaluators"
        assert not service.has_role("e2", Role.EVALUATOR)

    def test_double_assign(self, service: SeatLedgerService) -> None:
        _course(service)
        service.assign_evaluator("admin", 1, "e1")
        assert service.assign_evaluator("admin", 1, "e1").error_code == "EvaluatorAlreadyAssigned"
        assert service.unassign_evaluator("admin", 1, "e9").error_code == "EvaluatorNotAssigned"


class TestPurchase:
    def test_purchase(self, service: SeatLedgerService) -> None:
        _course(service)
        result = service.purchase_seat("alice", 1, Decimal("10"))
        assert result.success
        assert result.data["purchased_seats"] == 1
        assert service.get_enrolled_students(1) == ["alice"]
        assert service.treasury_balance == Decimal("10")

    def test_insufficient_payment(self, service: SeatLedgerService) -> None:
        _course(service)
        result = service.purchase_seat("alice", 1, Decimal("5"))
        assert result.error_code == "InsufficientPayment"
        assert service.get_purchased_seats(1) == 0
        assert service.get_enrolled_students(1) == []
        assert service.treasury_balance == Decimal("0")
        assert not service.has_role("alice", Role.STUDENT)

    def test_payment_failure_rolls_back(self) -> None:
        class _DecliningTreasury(InMemoryTreasury):
            def collect(self, payer, amount):
                raise PaymentError("card declined")

        service = SeatLedgerService(admin="admin", treasury=_DecliningTreasury())
        _course(service)
        result = service.purchase_seat("alice", 1, Decimal("10"))
        assert result.error_code == "PaymentError"
        assert service.get_purchased_seats(1) == 0
        assert service.get_courses_for_student("alice") == []
        assert not service.has_role("alice", Role.STUDENT)

    def test_oversell_enforced_by_config(self) -> None:
        service = SeatLedgerService(
            LedgerConfig(enforce_seat_availability=True), admin="admin",
        )
        _course(service, seats=1, fee="0")
        assert service.purchase_seat("alice", 1, 0).success
        assert service.purchase_seat("bob", 1, 0).error_code == "SeatsUnavailable"

    def test_concurrent_purchases_all_counted(self, service: SeatLedgerService) -> None:
        _course(service, seats=100, fee="1")

        def _buy(i: int) -> None:
            service.purchase_seat(f"s{i}", 1, Decimal("1"))

        threads = [threading.Thread(target=_buy, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert service.get_purchased_seats(1) == 20
        assert len(service.get_enrolled_students(1)) == 20
        assert service.treasury_balance == Decimal("20")
        assert service.event_log.count == 21


class TestEvaluate:
    @pytest.fixture
    def ready(self, service: SeatLedgerService) -> SeatLedgerService:
        _course(service)
        service.assign_evaluator("admin", 1, "prof")
        _enroll(service, "alice")
        return service

    def test_evaluate_records_entry_and_event(self, ready: SeatLedgerService) -> None:
        result = ready.evaluate("prof", 1, "alice", 7)
        assert result.success
        assert result.data["matched"] is True
        assert ready.get_evaluation_count(1) == 1
        assert ready.get_passed_count(1) == 1
        [event] = ready.event_log.events(EventKind.EVALUATION_COMPLETED)
        assert event.payload == {"course_id": 1, "student": "alice", "mark": 7}

    @pytest.mark.parametrize("mark", [0, 11])
    def test_illegal_mark(self, ready: SeatLedgerService, mark: int) -> None:
        assert ready.evaluate("prof", 1, "alice", mark).error_code == "IllegalMark"

    def test_student_without_courses(self, ready: SeatLedgerService) -> None:
        assert ready.evaluate("prof", 1, "nobody", 7).error_code == "NoCoursesForUser"

    def test_failed_match_leaves_pass_count(self, ready: SeatLedgerService) -> None:
        _course(ready, 2)
        ready.purchase_seat("bob", 2, Decimal("10"))
        result = ready.evaluate("prof", 1, "bob", 9)
        assert result.error_code == "CourseNotRegisteredForStudent"
        assert ready.get_passed_count(1) == 0
        assert ready.event_log.events(EventKind.EVALUATION_COMPLETED) == []

    def test_scan_index_mode(self) -> None:
        service = SeatLedgerService(
            LedgerConfig(evaluation_keying=EvaluationKeying.SCAN_INDEX), admin="admin",
        )
        service.create_courses("admin", [4, 5], [1, 1], ["a", "b"], [0, 0])
        service.assign_evaluator("admin", 5, "prof")
        service.purchase_seat("alice", 4, 0)
        service.purchase_seat("alice", 5, 0)
        assert service.evaluate("prof", 5, "alice", 8).success
        assert service.get_evaluation_count(1) == 1
        assert service.get_evaluation_count(5) == 0


class TestFinalize:
    @pytest.fixture
    def evaluated(self, service: SeatLedgerService) -> SeatLedgerService:
        _course(service, seats=3, fee="0")
        service.assign_evaluator("admin", 1, "prof")
        _enroll(service, "alice", fee="0")
        _enroll(service, "bob", fee="0")
        service.evaluate("prof", 1, "alice", 8)
        service.evaluate("prof", 1, "bob", 4)
        return service

    def test_finalize_reclaims_unsold_and_failed(self, evaluated: SeatLedgerService) -> None:
        result = evaluated.finalize_course("admin", 1, "cert-1.json")
        assert result.success, result.errors
        assert result.data["seats_remaining"] == 1
        assert result.data["certified_students"] == ["alice"]
        assert evaluated.get_created_seats(1) == 1
        assert evaluated.get_metadata_ref(1) == "cert-1.json"
        assert evaluated.is_finalized(1)
        assert evaluated.seat_balance("bob", 1) == 0
        assert evaluated.seat_balance("alice", 1) == 1

    def test_second_finalize_fails_without_change(self, evaluated: SeatLedgerService) -> None:
        evaluated.finalize_course("admin", 1, "cert-1.json")
        events_before = evaluated.event_log.count
        result = evaluated.finalize_course("admin", 1, "cert-2.json")
        assert result.error_code == "CourseAlreadyFinalized"
        assert evaluated.get_created_seats(1) == 1
        assert evaluated.get_metadata_ref(1) == "cert-1.json"
        assert evaluated.event_log.count == events_before

    def test_legacy_double_reclaim(self) -> None:
        service = SeatLedgerService(LedgerConfig(legacy_double_reclaim=True), admin="admin")
        _course(service, seats=3, fee="0")
        service.assign_evaluator("admin", 1, "prof")
        _enroll(service, "alice", fee="0")
        _enroll(service, "bob", fee="0")
        service.evaluate("prof", 1, "alice", 8)
        service.evaluate("prof", 1, "bob", 4)
        assert service.finalize_course("admin", 1, "cert-1.json").success
        assert service.get_created_seats(1) == 0

    def test_custody_failure_rolls_back_everything(self, service: SeatLedgerService) -> None:
        _course(service, seats=3, fee="0")
        service.assign_evaluator("admin", 1, "prof")
        # Bought but never received the unit, so burning it fails.
        service.purchase_seat("bob", 1, 0)
        service.evaluate("prof", 1, "bob", 2)

        result = service.finalize_course("admin", 1, "cert.json")
        assert result.error_code == "CustodyError"
        assert service.get_created_seats(1) == 3
        assert not service.is_finalized(1)
        assert service.seat_balance("admin", 1) == 3

    def test_top_up_after_finalize_rejected(self, evaluated: SeatLedgerService) -> None:
        evaluated.finalize_course("admin", 1, "cert-1.json")
        result = evaluated.create_courses("admin", [1], [5], ["again"], [0])
        assert result.error_code == "CourseAlreadyFinalized"
        assert evaluated.seat_balance("admin", 1) == 0


class TestReclaim:
    def test_reclaim_seats_burns_from_caller(self, service: SeatLedgerService) -> None:
        _course(service, seats=3)
        assert service.reclaim_seats("admin", [1], [2]).success
        assert service.get_created_seats(1) == 1
        assert service.seat_balance("admin", 1) == 1

    def test_reclaim_underflow(self, service: SeatLedgerService) -> None:
        _course(service, seats=3)
        assert service.reclaim_seats("admin", [1], [4]).error_code == "CounterUnderflow"
        assert service.seat_balance("admin", 1) == 3

    def test_reclaim_failed_student_seat(self, service: SeatLedgerService) -> None:
        _course(service, seats=3)
        _enroll(service, "bob")
        result = service.reclaim_failed_student_seat("admin", "bob", 1)
        assert result.data["seats_removed"] == 1
        assert service.get_created_seats(1) == 2
        assert service.seat_balance("bob", 1) == 0


class TestWithdraw:
    def test_withdraw(self, service: SeatLedgerService) -> None:
        _course(service)
        service.purchase_seat("alice", 1, Decimal("10"))
        result = service.withdraw("admin")
        assert result.data["amount"] == "10"
        assert service.treasury_balance == Decimal("0")

    def test_failed_withdrawal_keeps_funds(self) -> None:
        service = SeatLedgerService(
            admin="admin", treasury=InMemoryTreasury(payout=lambda to, amount: False),
        )
        _course(service)
        service.purchase_seat("alice", 1, Decimal("10"))
        result = service.withdraw("admin")
        assert result.error_code == "WithdrawalFailed"
        assert service.treasury_balance == Decimal("10")
        assert service.get_purchased_seats(1) == 1


class TestAudit:
    def test_audit_failure_rolls_back(self) -> None:
        class _BrokenLog(EventLog):
            def append(self, event):
                raise OSError("log volume gone")

        custody = InMemoryTokenCustody()
        service = SeatLedgerService(admin="admin", custody=custody, event_log=_BrokenLog())
        result = service.create_courses("admin", [1], [3], ["a"], [0])
        assert result.error_code == "AuditFailure"
        assert service.get_created_seats(1) == 0
        assert custody.balance_of("admin", 1) == 0

    def test_event_ids_sequential(self, service: SeatLedgerService) -> None:
        _course(service)
        service.assign_evaluator("admin", 1, "prof")
        ids = [e.event_id for e in service.event_log.events()]
        assert ids == ["EVT-00000001", "EVT-00000002"]

    def test_rejections_not_audited(self, service: SeatLedgerService) -> None:
        service.set_max_evaluators_amount("admin", 0)
        assert service.event_log.count == 0


class TestStatus:
    def test_status_and_summary(self, service: SeatLedgerService) -> None:
        _course(service)
        service.purchase_seat("alice", 1, Decimal("10"))
        status = service.status()
        assert status["courses"] == {
            "total": 1, "finalized": 0, "seats_created": 3, "seats_purchased": 1,
        }
        assert status["treasury_balance"] == "10"
        summary = service.course_summary(1)
        assert summary["enrolled_students"] == ["alice"]
        assert summary["uri"] == "ipfs://course-1.json"


class TestCollaboratorFailures:
    def test_custody_connection_error_rolls_back(self) -> None:
        class _UnreachableCustody(InMemoryTokenCustody):
            def mint_batch(self, owner, ids, quantities):
                raise ConnectionError("rpc unreachable")

        service = SeatLedgerService(admin="admin", custody=_UnreachableCustody())
        result = service.create_courses("admin", [1], [3], ["a"], [0])
        assert result.error_code == "CustodyError"
        assert "rpc unreachable" in result.errors[0]
        assert service.get_created_seats(1) == 0
        assert service.get_course_creator(1) is None
        assert service.event_log.count == 0

    def test_journal_clean_after_failed_call(self) -> None:
        calls = {"n": 0}

        class _FlakyCustody(InMemoryTokenCustody):
            def transfer(self, sender, recipient, course_id, quantity):
                calls["n"] += 1
                raise OSError("socket closed")

        custody = _FlakyCustody()
        service = SeatLedgerService(admin="admin", custody=custody)
        _course(service, fee="0")
        assert service.transfer_seat("admin", "alice", 1).error_code == "CustodyError"
        # An unrelated rejected operation must not reverse the committed mint.
        assert service.reclaim_seats("admin", [1], [9]).error_code == "CounterUnderflow"
        assert custody.balance_of("admin", 1) == 3
        assert calls["n"] == 1

    def test_unexpected_error_rolls_back_and_propagates(self) -> None:
        class _BuggyTreasury(InMemoryTreasury):
            def collect(self, payer, amount):
                raise KeyError(payer)

        service = SeatLedgerService(admin="admin", treasury=_BuggyTreasury())
        _course(service)
        with pytest.raises(KeyError):
            service.purchase_seat("alice", 1, Decimal("10"))
        assert service.get_purchased_seats(1) == 0
        assert service.get_enrolled_students(1) == []
        assert not service.has_role("alice", Role.STUDENT)


class TestAmounts:
    @pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", "sNaN"])
    def test_non_finite_payment_rejected(self, service: SeatLedgerService, amount: str) -> None:
        _course(service)
        result = service.purchase_seat("alice", 1, amount)
        assert result.error_code == "InvalidInput"
        assert service.get_purchased_seats(1) == 0
        assert service.treasury_balance == Decimal("0")

    @pytest.mark.parametrize("fee", ["NaN", "Infinity"])
    def test_non_finite_fee_rejected(self, service: SeatLedgerService, fee: str) -> None:
        result = service.create_courses("admin", [1], [3], ["a"], [fee])
        assert result.error_code == "InvalidInput"
        assert service.get_created_seats(1) == 0


class TestClosedCourse:
    @pytest.fixture
    def closed(self, service: SeatLedgerService) -> SeatLedgerService:
        _course(service, seats=2, fee="5")
        service.assign_evaluator("admin", 1, "prof")
        _enroll(service, "alice", fee="5")
        service.evaluate("prof", 1, "alice", 9)
        assert service.finalize_course("admin", 1, "cert.json").success
        return service

    def test_purchase_after_finalize_rejected(self, closed: SeatLedgerService) -> None:
        result = closed.purchase_seat("bob", 1, Decimal("5"))
        assert result.error_code == "CourseAlreadyFinalized"
        assert closed.get_purchased_seats(1) == 1
        assert closed.get_created_seats(1) == 1
        assert closed.treasury_balance == Decimal("5")

    def test_evaluate_after_finalize_rejected(self, closed: SeatLedgerService) -> None:
        result = closed.evaluate("prof", 1, "alice", 3)
        assert result.error_code == "CourseAlreadyFinalized"
        assert closed.get_evaluation_count(1) == 1
