"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
the provider, schedule, exception, availability and booking endpoints.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel


class ProviderResponse(BaseModel):
    """Response model for provider information."""
    id: int
    name: str
    timezone: str  # IANA zone, e.g. "Australia/Sydney"
    skills: List[str]
    is_active: bool
    default_slot_minutes: int
    buffer_before_minutes: int
    buffer_after_minutes: int
    default_durations: Dict[str, int] = {}


class ProviderListResponse(BaseModel):
    """Response model for listing providers."""
    providers: List[ProviderResponse]


class ScheduleBlockResponse(BaseModel):
    """One local-time block of a weekly schedule."""
    start: str  # Format: "HH:MM"
    end: str    # Format: "HH:MM" ("24:00" for end of day)
    location: Optional[str] = None
    chair: Optional[str] = None


class ScheduleResponse(BaseModel):
    """Response model for a weekly schedule version."""
    id: Optional[int] = None
    provider_id: int
    version: int
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None
    days: Dict[str, List[ScheduleBlockResponse]]
    breaks: Dict[str, List[ScheduleBlockResponse]] = {}


class ExceptionResponse(BaseModel):
    """Response model for an exception (time off or manual block)."""
    id: int
    provider_id: int
    kind: str
    start_utc: datetime
    end_utc: datetime
    reason: Optional[str] = None
    location: Optional[str] = None
    chair: Optional[str] = None
    created_at: Optional[datetime] = None


class ExceptionListResponse(BaseModel):
    """Response model for listing exceptions."""
    exceptions: List[ExceptionResponse]


class SlotRangeResponse(BaseModel):
    """A merged continuous span of free time."""
    start_utc: datetime
    end_utc: datetime
    group_key: Optional[str] = None
    location: Optional[str] = None
    chair: Optional[str] = None
    day_key: Optional[str] = None
    slot_count: int = 0


class AvailabilityResponse(BaseModel):
    """Response model for provider availability over a range."""
    provider_id: int
    from_utc: datetime
    to_utc: datetime
    ranges: List[SlotRangeResponse]


class ClassificationResponse(BaseModel):
    """Response model for classifying a candidate window."""
    provider_id: int
    candidate_from: datetime
    candidate_to: datetime
    classification: str  # "fits", "partial" or "unavailable"


class BookableSlotResponse(BaseModel):
    """A discrete bookable start time."""
    start_utc: datetime
    end_utc: datetime
    local_label: str
    location: Optional[str] = None
    chair: Optional[str] = None


class BookableSlotsResponse(BaseModel):
    """Response model for bookable start times."""
    provider_id: int
    duration_minutes: int
    slots: List[BookableSlotResponse]


class SuggestedProviderResponse(BaseModel):
    """Provider summary embedded in a suggestion."""
    id: int
    name: str
    timezone: str
    skills: List[str]
    active: bool


class SuggestionResponse(BaseModel):
    """One ranked provider suggestion."""
    provider: SuggestedProviderResponse
    fits: bool
    partial: bool
    score: float
    free_minutes: float
    earliest_start: Optional[datetime] = None


class SuggestionListResponse(BaseModel):
    """Response model for provider suggestions."""
    suggestions: List[SuggestionResponse]


class BookingAssignmentResponse(BaseModel):
    """Response model for a committed booking assignment."""
    id: int
    provider_id: int
    appointment_id: str
    slot_id: Optional[str] = None
    start_utc: datetime
    end_utc: datetime
    context: Optional[str] = None


class BookingAssignmentListResponse(BaseModel):
    """Response model for a provider's bookings over a period."""
    provider_id: int
    from_utc: datetime
    to_utc: datetime
    bookings: List[BookingAssignmentResponse]
