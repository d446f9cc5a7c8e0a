"""Tests for the course registry — creation, top-up, metadata, lookups."""

import pytest
from decimal import Decimal

from seatledger.errors import (
    CounterUnderflow,
    CourseAlreadyFinalized,
    CourseNotFound,
    InvalidInput,
    ParamLengthMismatch,
)
from seatledger.registry.courses import CourseRegistry


@pytest.fixture
def registry() -> CourseRegistry:
    return CourseRegistry()


class TestCreateCourses:
    def test_batch_creates_each_course(self, registry: CourseRegistry) -> None:
        count = registry.create_courses("admin", [1, 2], [3, 5], ["a", "b"], [0, 0])
        assert count == 2
        assert registry.get_created_seats(1) == 3
        assert registry.get_created_seats(2) == 5
        assert registry.get_metadata_ref(2) == "b"
        assert registry.get_course_creator(1) == "admin"

    def test_top_up_adds_seats_and_overwrites_attributes(
        self, registry: CourseRegistry,
    ) -> None:
        registry.create_courses("admin", [1], [3], ["a"], [Decimal("10")])
        registry.create_courses("admin2", [1], [2], ["a2"], [Decimal("12")])
        assert registry.get_created_seats(1) == 5
        assert registry.get_metadata_ref(1) == "a2"
        assert registry.get_fee(1) == Decimal("12")
        assert registry.get_course_creator(1) == "admin2"

    def test_repeated_id_in_one_batch_accumulates(self, registry: CourseRegistry) -> None:
        registry.create_courses("admin", [7, 7], [1, 4], ["x", "y"], [0, 1])
        assert registry.get_created_seats(7) == 5
        assert registry.get_metadata_ref(7) == "y"

    def test_length_mismatch_fails_before_mutation(self, registry: CourseRegistry) -> None:
        with pytest.raises(ParamLengthMismatch):
            registry.create_courses("admin", [1, 2], [3, 5], ["a"], [0, 0])
        assert not registry.exists(1)
        assert not registry.exists(2)

    def test_negative_seats_rejected(self, registry: CourseRegistry) -> None:
        with pytest.raises(InvalidInput):
            registry.create_courses("admin", [1, 2], [3, -1], ["a", "b"], [0, 0])
        assert not registry.exists(1)

    def test_negative_fee_rejected(self, registry: CourseRegistry) -> None:
        with pytest.raises(InvalidInput):
            registry.create_courses("admin", [1], [3], ["a"], [Decimal("-1")])

    def test_top_up_of_finalized_course_rejected(self, registry: CourseRegistry) -> None:
        registry.create_courses("admin", [1], [3], ["a"], [0])
        registry.mark_finalized(1)
        with pytest.raises(CourseAlreadyFinalized):
            registry.create_courses("admin", [1], [3], ["a"], [0])
        assert registry.get_created_seats(1) == 3


class TestMetadata:
    def test_set_certificate_metadata(self, registry: CourseRegistry) -> None:
        registry.create_courses("admin", [1], [3], ["a"], [0])
        registry.set_certificate_metadata(1, "cert")
        assert registry.get_metadata_ref(1) == "cert"

    def test_set_metadata_unknown_course(self, registry: CourseRegistry) -> None:
        with pytest.raises(CourseNotFound):
            registry.set_certificate_metadata(99, "cert")


class TestLookups:
    def test_unknown_course_yields_zero_values(self, registry: CourseRegistry) -> None:
        assert registry.get_course_creator(42) is None
        assert registry.get_created_seats(42) == 0
        assert registry.get_fee(42) == Decimal("0")
        assert registry.get_metadata_ref(42) == ""
        assert registry.is_finalized(42) is False

    def test_require_unknown_course_raises(self, registry: CourseRegistry) -> None:
        with pytest.raises(CourseNotFound):
            registry.require(42)


class TestReduceSeats:
    def test_reduce(self, registry: CourseRegistry) -> None:
        registry.create_courses("admin", [1], [3], ["a"], [0])
        assert registry.reduce_seats(1, 2) == 1

    def test_underflow_rejected(self, registry: CourseRegistry) -> None:
        registry.create_courses("admin", [1], [3], ["a"], [0])
        with pytest.raises(CounterUnderflow):
            registry.reduce_seats(1, 4)
        assert registry.get_created_seats(1) == 3


class TestSnapshot:
    def test_restore_round_trip_keeps_state(self, registry: CourseRegistry) -> None:
        registry.create_courses("admin", [1], [3], ["a"], [Decimal("2.50")])
        state = registry.snapshot()
        registry.create_courses("admin", [2], [1], ["b"], [0])
        registry.restore(state)
        assert registry.exists(1)
        assert not registry.exists(2)
        assert registry.get_fee(1) == Decimal("2.50")
