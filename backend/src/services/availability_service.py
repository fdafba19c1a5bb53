"""
Availability service for the read path of the availability engine.

Composes the pipeline stages (expand -> subtract exceptions -> subtract
bookings -> merge -> classify) for one provider. Nothing is cached: every
call recomputes availability from the schedule, exception and booking
records returned by the store.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from core.constants import DEFAULT_TREATMENT_MINUTES
from core.exceptions import ScheduleNotFoundError
from services.availability_store import AvailabilityStore
from services.interval_subtractor import BookingSubtractor, ExceptionSubtractor
from services.recurrence_expander import RecurrenceExpander, validate_range
from services.slot_generator import SlotGenerator
from services.slot_merger import SlotMerger
from services.window_classifier import WindowClassifier
from shared_types.availability import (
    AvailabilitySlot, BookableSlot, BookedInterval, ProviderProfile, SlotRange, WindowClassification
)
from utils.datetime_utils import resolve_timezone

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Service class for availability queries.

    All methods take the AvailabilityStore explicitly so the same code runs
    against the database and against in-memory stores.
    """

    @staticmethod
    def compute_free_slots(
        store: AvailabilityStore,
        provider_id: int,
        from_utc: datetime,
        to_utc: datetime,
        exclude_assignment_id: Optional[int] = None,
        provider: Optional[ProviderProfile] = None,
    ) -> List[AvailabilitySlot]:
        """
        Compute the atomic free slots of a provider over [from_utc, to_utc).

        Args:
            store: Availability store
            provider_id: Provider ID
            from_utc: Range start
            to_utc: Range end
            exclude_assignment_id: Booking assignment to ignore (reschedule)
            provider: Already loaded provider, to avoid a second lookup

        Returns:
            Free slots ordered by start

        Raises:
            InvalidRangeError: If from_utc >= to_utc
            ProviderNotFoundError: If the provider does not exist
            TimezoneResolutionError: If the provider's zone is invalid
            ScheduleNotFoundError: If no schedule version overlaps the range
        """
        from_utc, to_utc = validate_range(from_utc, to_utc)
        if provider is None:
            provider = store.get_provider(provider_id)
        tz = resolve_timezone(provider.timezone)

        versions = store.list_schedule_versions(provider_id, from_utc, to_utc)
        if not versions:
            raise ScheduleNotFoundError(
                f"No schedule version for provider {provider_id} between "
                f"{from_utc.isoformat()} and {to_utc.isoformat()}"
            )

        expanded = RecurrenceExpander.expand_versions(versions, tz, from_utc, to_utc)
        exceptions = store.list_exceptions(provider_id, from_utc, to_utc)
        after_exceptions = ExceptionSubtractor.subtract(expanded, exceptions)

        # Bookings just outside the range can still reach in through their buffers
        before = timedelta(minutes=provider.buffer_before_minutes)
        after = timedelta(minutes=provider.buffer_after_minutes)
        bookings = store.list_booking_assignments(
            provider_id,
            from_utc - after,
            to_utc + before,
            exclude_assignment_id=exclude_assignment_id,
        )
        return BookingSubtractor.subtract(
            after_exceptions,
            bookings,
            buffer_before_minutes=provider.buffer_before_minutes,
            buffer_after_minutes=provider.buffer_after_minutes,
            exclude_assignment_id=exclude_assignment_id,
        )

    @staticmethod
    def compute_availability(
        store: AvailabilityStore,
        provider_id: int,
        from_utc: datetime,
        to_utc: datetime,
        grouping: Optional[bool] = None,
        tolerance_ms: Optional[int] = None,
        provider: Optional[ProviderProfile] = None,
    ) -> List[SlotRange]:
        """
        Compute merged free ranges for a provider.

        `grouping` and `tolerance_ms` default to the configured values.
        """
        free_slots = AvailabilityService.compute_free_slots(
            store, provider_id, from_utc, to_utc, provider=provider
        )
        ranges = SlotMerger.merge(free_slots, tolerance_ms=tolerance_ms, enforce_grouping=grouping)
        logger.debug(
            f"Provider {provider_id}: {len(free_slots)} free slots merged into {len(ranges)} ranges"
        )
        return ranges

    @staticmethod
    def classify_window(
        store: AvailabilityStore,
        provider_id: int,
        from_utc: datetime,
        to_utc: datetime,
        candidate_from: datetime,
        candidate_to: datetime,
    ) -> WindowClassification:
        """Classify a candidate window against the provider's ranges in [from_utc, to_utc)."""
        validate_range(candidate_from, candidate_to)
        ranges = AvailabilityService.compute_availability(store, provider_id, from_utc, to_utc)
        return WindowClassifier.classify(ranges, candidate_from, candidate_to)

    @staticmethod
    def list_bookings(
        store: AvailabilityStore,
        provider_id: int,
        from_utc: datetime,
        to_utc: datetime,
    ) -> List[BookedInterval]:
        """
        Booking assignments of a provider overlapping [from_utc, to_utc), ordered by start.

        Raises:
            InvalidRangeError: If from_utc >= to_utc
            ProviderNotFoundError: If the provider does not exist
        """
        from_utc, to_utc = validate_range(from_utc, to_utc)
        store.get_provider(provider_id)
        bookings = store.list_booking_assignments(provider_id, from_utc, to_utc)
        return sorted(bookings, key=lambda b: (b.start_utc, b.id or 0))

    @staticmethod
    def compute_bookable_slots(
        store: AvailabilityStore,
        provider_id: int,
        from_utc: datetime,
        to_utc: datetime,
        duration_minutes: Optional[int] = None,
        skill: Optional[str] = None,
        step_minutes: Optional[int] = None,
    ) -> List[BookableSlot]:
        """
        Discrete start times for an appointment of a given length.

        Duration falls back to the provider's per-skill override, then to the
        default treatment length. The step defaults to the provider's slot size.
        """
        provider = store.get_provider(provider_id)
        if duration_minutes is None:
            duration_minutes = DEFAULT_TREATMENT_MINUTES
            if skill:
                duration_minutes = provider.default_durations.get(skill, duration_minutes)
        if step_minutes is None:
            step_minutes = provider.default_slot_minutes

        free_slots = AvailabilityService.compute_free_slots(
            store, provider_id, from_utc, to_utc, provider=provider
        )
        return SlotGenerator.generate(
            free_slots,
            resolve_timezone(provider.timezone),
            duration_minutes=duration_minutes,
            step_minutes=step_minutes,
        )
