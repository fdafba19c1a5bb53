"""
Unit tests for BookingReservationGuard.

Concurrency tests run real threads against the in-memory store.
"""

import threading
from contextlib import contextmanager

import pytest

from core.exceptions import (
    AssignmentNotFoundError, ConflictError, InvalidRangeError, ProviderNotFoundError
)
from services.availability_service import AvailabilityService
from services.booking_reservation_service import (
    BookingReservationGuard, ProviderLockRegistry, ReservationAttempt, ReservationState
)
from shared_types.availability import (
    BookedInterval, ExceptionKind, ScheduleException, WeeklySchedule, WindowClassification
)
from tests.fakes import InMemoryAvailabilityStore, block, make_provider, utc

# Monday 09:00 and 09:30 Sydney
NINE = utc(2025, 3, 2, 22)
NINE_THIRTY = utc(2025, 3, 2, 22, 30)


def monday_morning(provider_id):
    return WeeklySchedule(provider_id=provider_id, blocks={"mon": [block("09:00", "12:00")]})


@pytest.fixture
def store():
    store = InMemoryAvailabilityStore()
    store.add_provider(make_provider(1), monday_morning(1))
    store.add_provider(make_provider(2), monday_morning(2))
    return store


class TestReserveBooking:
    """Test single reservations."""

    def test_reserve_free_interval(self, store):
        assignment = BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-1", slot_id="s-1")

        assert assignment.id is not None
        assert assignment.start_utc == NINE
        assert assignment.end_utc == NINE_THIRTY
        assert assignment.appointment_id == "appt-1"
        assert assignment.slot_id == "s-1"
        assert assignment.context == "booking"
        assert len(store.bookings) == 1

    def test_reserved_time_is_not_available_again(self, store):
        BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-1")

        with pytest.raises(ConflictError) as exc_info:
            BookingReservationGuard.reserve_booking(store, 1, utc(2025, 3, 2, 22, 15), utc(2025, 3, 2, 22, 45), "appt-2")

        assert exc_info.value.conflict_kind == "booking"
        assert exc_info.value.conflict_label == "appt-1"

    def test_back_to_back_bookings_are_allowed(self, store):
        BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-1")
        BookingReservationGuard.reserve_booking(store, 1, NINE_THIRTY, utc(2025, 3, 2, 23), "appt-2")
        assert len(store.bookings) == 2

    def test_buffer_blocks_adjacent_booking(self):
        store = InMemoryAvailabilityStore()
        store.add_provider(make_provider(1, buffer_after_minutes=10), monday_morning(1))
        BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-1")

        with pytest.raises(ConflictError) as exc_info:
            BookingReservationGuard.reserve_booking(store, 1, NINE_THIRTY, utc(2025, 3, 2, 23), "appt-2")

        assert exc_info.value.conflict_kind == "booking"

    def test_exception_conflict(self, store):
        store.add_exception(ScheduleException(
            kind=ExceptionKind.PTO,
            start_utc=utc(2025, 3, 2, 22, 15),
            end_utc=utc(2025, 3, 2, 23),
            provider_id=1,
            id=42,
        ))

        with pytest.raises(ConflictError) as exc_info:
            BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-1")

        conflict = exc_info.value
        assert conflict.conflict_kind == "exception"
        assert conflict.conflict_id == 42
        assert conflict.conflict_label == "PTO"
        assert store.bookings == []

    def test_outside_schedule_conflict(self, store):
        with pytest.raises(ConflictError) as exc_info:
            BookingReservationGuard.reserve_booking(store, 1, utc(2025, 3, 3, 2), utc(2025, 3, 3, 2, 30), "appt-1")
        assert exc_info.value.conflict_kind == "outside_schedule"

    def test_provider_without_schedule_conflicts(self):
        store = InMemoryAvailabilityStore()
        store.add_provider(make_provider(1))

        with pytest.raises(ConflictError) as exc_info:
            BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-1")
        assert exc_info.value.conflict_kind == "outside_schedule"

    def test_window_across_chairs_is_rejected_like_classification(self):
        store = InMemoryAvailabilityStore()
        store.add_provider(make_provider(1), WeeklySchedule(provider_id=1, blocks={"mon": [
            block("09:00", "10:00", chair="1"),
            block("10:00", "11:00", chair="2"),
        ]}))
        start, end = utc(2025, 3, 2, 22, 30), utc(2025, 3, 2, 23, 30)

        classification = AvailabilityService.classify_window(
            store, 1, NINE, utc(2025, 3, 3, 0), start, end
        )
        with pytest.raises(ConflictError) as exc_info:
            BookingReservationGuard.reserve_booking(store, 1, start, end, "appt-1")

        assert classification == WindowClassification.PARTIAL
        assert exc_info.value.conflict_kind == "crosses_group"
        assert store.bookings == []

    def test_window_inside_one_chair_is_reserved(self):
        store = InMemoryAvailabilityStore()
        store.add_provider(make_provider(1), WeeklySchedule(provider_id=1, blocks={"mon": [
            block("09:00", "10:00", chair="1"),
            block("10:00", "11:00", chair="2"),
        ]}))

        assignment = BookingReservationGuard.reserve_booking(
            store, 1, utc(2025, 3, 2, 23), utc(2025, 3, 2, 23, 30), "appt-1"
        )

        assert assignment.start_utc == utc(2025, 3, 2, 23)

    def test_unknown_provider(self, store):
        with pytest.raises(ProviderNotFoundError):
            BookingReservationGuard.reserve_booking(store, 99, NINE, NINE_THIRTY, "appt-1")

    def test_inverted_interval(self, store):
        with pytest.raises(InvalidRangeError):
            BookingReservationGuard.reserve_booking(store, 1, NINE_THIRTY, NINE, "appt-1")

    def test_providers_are_independent(self, store):
        BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-1")
        BookingReservationGuard.reserve_booking(store, 2, NINE, NINE_THIRTY, "appt-2")
        assert len(store.bookings) == 2

    def test_store_recheck_catches_stale_read(self, store):
        """A booking invisible to the read path is still caught at commit."""

        class StaleReadStore(InMemoryAvailabilityStore):
            def list_booking_assignments(self, *args, **kwargs):
                return []

        stale = StaleReadStore()
        stale.add_provider(make_provider(1), monday_morning(1))
        stale.add_booking(1, NINE, NINE_THIRTY, appointment_id="appt-1")

        with pytest.raises(ConflictError) as exc_info:
            BookingReservationGuard.reserve_booking(stale, 1, NINE, NINE_THIRTY, "appt-2")

        assert exc_info.value.conflict_kind == "booking"
        assert stale.commit_calls == 1
        assert len(stale.bookings) == 1


class TestConcurrentReservations:
    """Simultaneous reservations for the same provider."""

    def _race(self, store, requests):
        barrier = threading.Barrier(len(requests))
        results = [None] * len(requests)

        def worker(index, provider_id, start, end):
            barrier.wait()
            try:
                results[index] = BookingReservationGuard.reserve_booking(
                    store, provider_id, start, end, f"appt-{index}"
                )
            except ConflictError as exc:
                results[index] = exc

        threads = [
            threading.Thread(target=worker, args=(i, *request))
            for i, request in enumerate(requests)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)
        return results

    def test_same_interval_exactly_one_wins(self, store):
        results = self._race(store, [(1, NINE, NINE_THIRTY), (1, NINE, NINE_THIRTY)])

        wins = [r for r in results if isinstance(r, BookedInterval)]
        losses = [r for r in results if isinstance(r, ConflictError)]
        assert len(wins) == 1
        assert len(losses) == 1
        assert losses[0].conflict_kind == "booking"
        assert len(store.bookings) == 1

    def test_many_threads_one_slot(self, store):
        results = self._race(store, [(1, NINE, NINE_THIRTY)] * 8)

        assert sum(isinstance(r, BookedInterval) for r in results) == 1
        assert len(store.bookings) == 1

    def test_disjoint_intervals_all_succeed(self, store):
        requests = [
            (1, utc(2025, 3, 2, 22, m), utc(2025, 3, 2, 22, m + 10))
            for m in (0, 10, 20, 30, 40, 50)
        ]
        results = self._race(store, requests)

        assert all(isinstance(r, BookedInterval) for r in results)
        assert len(store.bookings) == 6

    def test_different_providers_same_interval(self, store):
        results = self._race(store, [(1, NINE, NINE_THIRTY), (2, NINE, NINE_THIRTY)])
        assert all(isinstance(r, BookedInterval) for r in results)


class TestRescheduleAndCancel:
    """Test moving and releasing assignments."""

    def test_reschedule_overlapping_own_interval(self, store):
        original = BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-1")

        moved = BookingReservationGuard.reschedule_booking(
            store, 1, original.id, utc(2025, 3, 2, 22, 15), utc(2025, 3, 2, 22, 45)
        )

        assert moved.appointment_id == "appt-1"
        assert moved.start_utc == utc(2025, 3, 2, 22, 15)
        assert [b.id for b in store.bookings] == [moved.id]

    def test_reschedule_conflict_keeps_original(self, store):
        original = BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-1")
        BookingReservationGuard.reserve_booking(store, 1, utc(2025, 3, 2, 23), utc(2025, 3, 2, 23, 30), "appt-2")

        with pytest.raises(ConflictError):
            BookingReservationGuard.reschedule_booking(
                store, 1, original.id, utc(2025, 3, 2, 23), utc(2025, 3, 2, 23, 30)
            )

        assert store.get_booking_assignment(original.id) is not None
        assert len(store.bookings) == 2

    def test_reschedule_foreign_assignment(self, store):
        other = BookingReservationGuard.reserve_booking(store, 2, NINE, NINE_THIRTY, "appt-1")

        with pytest.raises(AssignmentNotFoundError):
            BookingReservationGuard.reschedule_booking(store, 1, other.id, NINE_THIRTY, utc(2025, 3, 2, 23))

    def test_reschedule_after_concurrent_cancel_does_not_restore_booking(self, store):
        """A cancel that lands while the reschedule waits for the lock wins."""
        original = BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-1")

        class CancelWhileWaitingStore(InMemoryAvailabilityStore):
            @contextmanager
            def lock_provider(self, provider_id):
                self.delete_booking_assignment(original.id)
                with super().lock_provider(provider_id):
                    yield

        racing = CancelWhileWaitingStore()
        racing.providers = store.providers
        racing.schedules = store.schedules
        racing.bookings = list(store.bookings)

        with pytest.raises(AssignmentNotFoundError):
            BookingReservationGuard.reschedule_booking(
                racing, 1, original.id, NINE_THIRTY, utc(2025, 3, 2, 23)
            )

        assert racing.bookings == []
        assert racing.commit_calls == 0

    def test_store_refuses_to_replace_missing_assignment(self, store):
        with pytest.raises(AssignmentNotFoundError):
            store.commit_booking_assignment(
                BookedInterval(start_utc=NINE, end_utc=NINE_THIRTY, provider_id=1, appointment_id="appt-1"),
                replaces_assignment_id=999,
            )
        assert store.bookings == []

    def test_cancel_frees_the_interval(self, store):
        assignment = BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-1")

        BookingReservationGuard.cancel_booking(store, 1, assignment.id)
        again = BookingReservationGuard.reserve_booking(store, 1, NINE, NINE_THIRTY, "appt-2")

        assert [b.id for b in store.bookings] == [again.id]

    def test_cancel_missing_assignment(self, store):
        with pytest.raises(AssignmentNotFoundError):
            BookingReservationGuard.cancel_booking(store, 1, 12345)


class TestReservationPrimitives:
    """Test the attempt state machine and lock registry."""

    def test_attempt_transitions(self):
        attempt = ReservationAttempt(provider_id=1, start_utc=NINE, end_utc=NINE_THIRTY, appointment_id="a")
        assert attempt.state == ReservationState.REQUESTED

        attempt.mark_checked()
        assert attempt.state == ReservationState.CHECKED

        conflict = ConflictError("busy", conflict_kind="booking", start_utc=NINE, end_utc=NINE_THIRTY)
        attempt.reject(conflict)
        assert attempt.state == ReservationState.REJECTED
        assert attempt.conflict is conflict

    def test_lock_per_provider(self):
        registry = ProviderLockRegistry()
        assert registry.get(1) is registry.get(1)
        assert registry.get(1) is not registry.get(2)
