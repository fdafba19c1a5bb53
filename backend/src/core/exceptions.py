"""
Domain errors raised by the availability engine.

Read-path errors propagate unchanged to the caller; the HTTP layer maps them
to status codes in main.py.
"""

from datetime import datetime
from typing import Any, Dict, Optional


class AvailabilityError(Exception):
    """Base class for all availability engine errors."""

    error_type = "availability_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "type": self.error_type}


class InvalidRangeError(AvailabilityError):
    """Malformed or empty query range (from >= to)."""

    error_type = "invalid_range"


class InvalidScheduleError(AvailabilityError):
    """Weekly schedule blocks overlap or have start >= end."""

    error_type = "invalid_schedule"


class ScheduleNotFoundError(AvailabilityError):
    """No weekly schedule version covers the requested instant or range."""

    error_type = "schedule_not_found"


class TimezoneResolutionError(AvailabilityError):
    """Unknown or invalid IANA zone configured on a provider."""

    error_type = "timezone_resolution"


class ProviderNotFoundError(AvailabilityError):
    error_type = "provider_not_found"


class ExceptionNotFoundError(AvailabilityError):
    error_type = "exception_not_found"


class AssignmentNotFoundError(AvailabilityError):
    error_type = "assignment_not_found"


class ImmutableExceptionError(AvailabilityError):
    """Past exceptions cannot be edited or deleted."""

    error_type = "immutable_exception"


class ConflictError(AvailabilityError):
    """
    Booking collides with an exception, another booking, or falls outside
    the working schedule.

    Carries the colliding interval so callers can show what is in the way.
    """

    error_type = "conflict"

    def __init__(
        self,
        message: str,
        conflict_kind: str,
        start_utc: datetime,
        end_utc: datetime,
        conflict_id: Optional[int] = None,
        conflict_label: Optional[str] = None,
    ):
        super().__init__(message)
        self.conflict_kind = conflict_kind
        """One of 'exception', 'booking', 'crosses_group', 'outside_schedule'."""
        self.start_utc = start_utc
        self.end_utc = end_utc
        self.conflict_id = conflict_id
        self.conflict_label = conflict_label

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["conflict"] = {
            "kind": self.conflict_kind,
            "id": self.conflict_id,
            "label": self.conflict_label,
            "start_utc": self.start_utc.isoformat(),
            "end_utc": self.end_utc.isoformat(),
        }
        return result
