"""
Booking reservation guard for the write path of the availability engine.

Every attempt to occupy provider time runs inside a per-provider critical
section: an in-process lock keyed by provider id plus the store's row lock
on the provider record. Inside that section the pipeline is re-run for the
target interval only and the assignment is committed only if the window
fits inside one merged free range, the same rule the read path uses to
report Fits. The store re-verifies overlap in its own transaction before
inserting. Conflicts are reported to the caller; nothing is retried.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Generator, Optional

from core.constants import DEFAULT_BOOKING_CONTEXT
from core.exceptions import AssignmentNotFoundError, ConflictError, ScheduleNotFoundError
from services.availability_service import AvailabilityService
from services.availability_store import AvailabilityStore
from services.recurrence_expander import validate_range
from services.slot_merger import SlotMerger
from services.window_classifier import WindowClassifier
from shared_types.availability import BookedInterval, ProviderProfile, WindowClassification
from utils.intervals import coalesce_spans, overlaps

logger = logging.getLogger(__name__)


class ReservationState(str, Enum):
    REQUESTED = "requested"
    CHECKED = "checked"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass
class ReservationAttempt:
    """One pass through Requested -> Checked -> Committed | Rejected."""

    provider_id: int
    start_utc: datetime
    end_utc: datetime
    appointment_id: str
    slot_id: Optional[str] = None
    context: Optional[str] = None
    replaces_assignment_id: Optional[int] = None
    state: ReservationState = ReservationState.REQUESTED
    assignment: Optional[BookedInterval] = None
    conflict: Optional[ConflictError] = None

    def mark_checked(self) -> None:
        self.state = ReservationState.CHECKED

    def commit(self, assignment: BookedInterval) -> None:
        self.state = ReservationState.COMMITTED
        self.assignment = assignment

    def reject(self, conflict: ConflictError) -> None:
        self.state = ReservationState.REJECTED
        self.conflict = conflict


class ProviderLockRegistry:
    """Hands out one lock per provider id; never a global booking lock."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def get(self, provider_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(provider_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[provider_id] = lock
            return lock

    @contextmanager
    def hold(self, provider_id: int) -> Generator[None, None, None]:
        lock = self.get(provider_id)
        with lock:
            yield


provider_locks = ProviderLockRegistry()


class BookingReservationGuard:
    """Serializes reserve, reschedule and cancel per provider."""

    @staticmethod
    def _find_conflict(
        store: AvailabilityStore,
        provider: ProviderProfile,
        start_utc: datetime,
        end_utc: datetime,
        exclude_assignment_id: Optional[int] = None,
    ) -> Optional[ConflictError]:
        """
        Re-run the pipeline for the target interval and explain any refusal.

        Returns None when [start_utc, end_utc) fits inside one merged range.
        """
        try:
            free = AvailabilityService.compute_free_slots(
                store, provider.id, start_utc, end_utc,
                exclude_assignment_id=exclude_assignment_id,
                provider=provider,
            )
        except ScheduleNotFoundError:
            free = []

        ranges = SlotMerger.merge(free)
        if WindowClassifier.classify(ranges, start_utc, end_utc) == WindowClassification.FITS:
            return None

        for exception in store.list_exceptions(provider.id, start_utc, end_utc):
            if overlaps(exception.start_utc, exception.end_utc, start_utc, end_utc):
                return ConflictError(
                    f"Provider {provider.id} is unavailable ({exception.kind.value}) "
                    f"from {exception.start_utc.isoformat()} to {exception.end_utc.isoformat()}",
                    conflict_kind="exception",
                    start_utc=exception.start_utc,
                    end_utc=exception.end_utc,
                    conflict_id=exception.id,
                    conflict_label=exception.kind.value,
                )

        before = timedelta(minutes=provider.buffer_before_minutes)
        after = timedelta(minutes=provider.buffer_after_minutes)
        bookings = store.list_booking_assignments(
            provider.id, start_utc - after, end_utc + before,
            exclude_assignment_id=exclude_assignment_id,
        )
        for booking in bookings:
            if overlaps(booking.start_utc - before, booking.end_utc + after, start_utc, end_utc):
                return BookingReservationGuard._booking_conflict(provider.id, booking)

        if any(s <= start_utc and e >= end_utc for s, e in coalesce_spans(free)):
            return ConflictError(
                f"Interval {start_utc.isoformat()} - {end_utc.isoformat()} spans more than one "
                f"location or chair of provider {provider.id}",
                conflict_kind="crosses_group",
                start_utc=start_utc,
                end_utc=end_utc,
            )

        return ConflictError(
            f"Interval {start_utc.isoformat()} - {end_utc.isoformat()} is outside "
            f"provider {provider.id}'s working schedule",
            conflict_kind="outside_schedule",
            start_utc=start_utc,
            end_utc=end_utc,
        )

    @staticmethod
    def _booking_conflict(provider_id: int, booking: BookedInterval) -> ConflictError:
        return ConflictError(
            f"Provider {provider_id} is already booked "
            f"from {booking.start_utc.isoformat()} to {booking.end_utc.isoformat()}",
            conflict_kind="booking",
            start_utc=booking.start_utc,
            end_utc=booking.end_utc,
            conflict_id=booking.id,
            conflict_label=booking.appointment_id,
        )

    @staticmethod
    def _require_assignment(store: AvailabilityStore, provider_id: int, assignment_id: int) -> BookedInterval:
        existing = store.get_booking_assignment(assignment_id)
        if existing is None or existing.provider_id != provider_id:
            raise AssignmentNotFoundError(
                f"Booking assignment {assignment_id} not found for provider {provider_id}"
            )
        return existing

    @staticmethod
    def _run(store: AvailabilityStore, attempt: ReservationAttempt) -> BookedInterval:
        with provider_locks.hold(attempt.provider_id):
            with store.lock_provider(attempt.provider_id):
                if attempt.replaces_assignment_id is not None:
                    # The assignment may have been cancelled while we waited for the lock
                    BookingReservationGuard._require_assignment(
                        store, attempt.provider_id, attempt.replaces_assignment_id
                    )
                provider = store.get_provider(attempt.provider_id)
                conflict = BookingReservationGuard._find_conflict(
                    store, provider, attempt.start_utc, attempt.end_utc,
                    exclude_assignment_id=attempt.replaces_assignment_id,
                )
                attempt.mark_checked()

                if conflict is None:
                    ok, detail = store.commit_booking_assignment(
                        BookedInterval(
                            start_utc=attempt.start_utc,
                            end_utc=attempt.end_utc,
                            provider_id=attempt.provider_id,
                            appointment_id=attempt.appointment_id,
                            slot_id=attempt.slot_id,
                            context=attempt.context or DEFAULT_BOOKING_CONTEXT,
                        ),
                        replaces_assignment_id=attempt.replaces_assignment_id,
                    )
                    if ok and detail is not None:
                        attempt.commit(detail)
                    else:
                        conflict = BookingReservationGuard._booking_conflict(attempt.provider_id, detail)

                if conflict is not None:
                    attempt.reject(conflict)
                    logger.info(
                        f"Rejected booking for provider {attempt.provider_id} "
                        f"{attempt.start_utc.isoformat()} - {attempt.end_utc.isoformat()}: {conflict.conflict_kind}"
                    )
                    raise conflict

        logger.info(
            f"Committed booking assignment {attempt.assignment.id} for provider {attempt.provider_id} "
            f"(appointment {attempt.appointment_id}) {attempt.start_utc.isoformat()} - {attempt.end_utc.isoformat()}"
        )
        return attempt.assignment

    @staticmethod
    def reserve_booking(
        store: AvailabilityStore,
        provider_id: int,
        candidate_from: datetime,
        candidate_to: datetime,
        appointment_id: str,
        slot_id: Optional[str] = None,
        context: Optional[str] = None,
    ) -> BookedInterval:
        """
        Reserve [candidate_from, candidate_to) for an appointment.

        Returns:
            The committed booking assignment

        Raises:
            InvalidRangeError: If candidate_from >= candidate_to
            ProviderNotFoundError: If the provider does not exist
            ConflictError: If the interval collides with an exception, another
                booking, or falls outside the working schedule
        """
        candidate_from, candidate_to = validate_range(candidate_from, candidate_to)
        attempt = ReservationAttempt(
            provider_id=provider_id,
            start_utc=candidate_from,
            end_utc=candidate_to,
            appointment_id=appointment_id,
            slot_id=slot_id,
            context=context,
        )
        return BookingReservationGuard._run(store, attempt)

    @staticmethod
    def reschedule_booking(
        store: AvailabilityStore,
        provider_id: int,
        assignment_id: int,
        new_from: datetime,
        new_to: datetime,
    ) -> BookedInterval:
        """
        Move an assignment to a new interval.

        The assignment's own current interval does not block the move. On
        success the old row is replaced by a new one in a single transaction;
        on conflict the old assignment stays in place.

        Raises:
            AssignmentNotFoundError: If the assignment does not belong to the provider
            ConflictError: If the new interval is not free
        """
        new_from, new_to = validate_range(new_from, new_to)
        existing = BookingReservationGuard._require_assignment(store, provider_id, assignment_id)

        attempt = ReservationAttempt(
            provider_id=provider_id,
            start_utc=new_from,
            end_utc=new_to,
            appointment_id=existing.appointment_id,
            slot_id=existing.slot_id,
            context=existing.context,
            replaces_assignment_id=assignment_id,
        )
        return BookingReservationGuard._run(store, attempt)

    @staticmethod
    def cancel_booking(store: AvailabilityStore, provider_id: int, assignment_id: int) -> None:
        """
        Delete an assignment, freeing its interval.

        Raises:
            AssignmentNotFoundError: If the assignment does not belong to the provider
        """
        with provider_locks.hold(provider_id):
            with store.lock_provider(provider_id):
                BookingReservationGuard._require_assignment(store, provider_id, assignment_id)
                store.delete_booking_assignment(assignment_id)

        logger.info(f"Cancelled booking assignment {assignment_id} for provider {provider_id}")
