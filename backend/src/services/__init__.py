"""
Services package for the availability engine.

The pipeline services (expander, subtractors, merger, classifier) are pure
and work on shared_types values; the record services (providers, schedules,
exceptions) work on a database session.
"""

from .availability_service import AvailabilityService
from .availability_store import AvailabilityStore, SqlAlchemyAvailabilityStore
from .booking_reservation_service import BookingReservationGuard, ReservationState
from .exception_service import ExceptionService
from .interval_subtractor import BookingSubtractor, ExceptionSubtractor
from .provider_service import ProviderService
from .provider_suggestion_service import ProviderSuggester
from .recurrence_expander import RecurrenceExpander
from .schedule_service import ScheduleService
from .slot_generator import SlotGenerator
from .slot_merger import SlotMerger
from .window_classifier import WindowClassifier

__all__ = [
    "AvailabilityService",
    "AvailabilityStore",
    "SqlAlchemyAvailabilityStore",
    "BookingReservationGuard",
    "ReservationState",
    "ExceptionService",
    "BookingSubtractor",
    "ExceptionSubtractor",
    "ProviderService",
    "ProviderSuggester",
    "RecurrenceExpander",
    "ScheduleService",
    "SlotGenerator",
    "SlotMerger",
    "WindowClassifier",
]
