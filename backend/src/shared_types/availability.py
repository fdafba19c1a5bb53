"""
Shared types for availability-related functionality.

This module contains the value types that flow through the availability
pipeline (expand -> subtract -> merge -> classify). They are plain
dataclasses so the pipeline stays independent of the ORM models; the
availability store converts database rows into these types.
"""

from dataclasses import dataclass, field
from datetime import datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional

from core.constants import SCORE_FITS, SCORE_PARTIAL, SCORE_UNAVAILABLE


class ExceptionKind(str, Enum):
    """Closed set of reasons a provider is unavailable."""

    PTO = "PTO"
    SICK = "Sick"
    COURSE = "Course"
    PUBLIC_HOLIDAY = "PublicHoliday"
    BLOCK = "Block"


class WindowClassification(str, Enum):
    """Outcome of classifying a candidate window against free ranges."""

    FITS = "fits"
    PARTIAL = "partial"
    UNAVAILABLE = "unavailable"

    @property
    def score(self) -> float:
        return {"fits": SCORE_FITS, "partial": SCORE_PARTIAL, "unavailable": SCORE_UNAVAILABLE}[self.value]


@dataclass(frozen=True)
class SlotMeta:
    """Grouping metadata carried by expanded intervals."""

    location: Optional[str] = None
    chair: Optional[str] = None
    day_key: Optional[str] = None  # "mon".."sun" in the provider's zone

    def group_key(self) -> str:
        """Default grouping key: location|chair|day."""
        return f"{self.location or ''}|{self.chair or ''}|{self.day_key or ''}"


@dataclass(frozen=True)
class Interval:
    """Half-open UTC interval [start_utc, end_utc) with grouping metadata."""

    start_utc: datetime
    end_utc: datetime
    meta: SlotMeta = field(default_factory=SlotMeta)

    @property
    def duration_minutes(self) -> float:
        return (self.end_utc - self.start_utc).total_seconds() / 60


# An atomic free interval left after subtracting exceptions and bookings.
AvailabilitySlot = Interval


@dataclass
class SlotRange:
    """
    A continuous span of free time merged from one or more slots.

    Equality compares the span and its grouping key only, so merging an
    already-merged list yields an equal list.
    """

    start_utc: datetime
    end_utc: datetime
    group_key: Optional[str] = None
    meta: SlotMeta = field(default_factory=SlotMeta)
    slots: List[Any] = field(default_factory=list, compare=False, repr=False)

    @property
    def duration_minutes(self) -> float:
        return (self.end_utc - self.start_utc).total_seconds() / 60

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_utc": self.start_utc.isoformat(),
            "end_utc": self.end_utc.isoformat(),
            "group_key": self.group_key,
            "location": self.meta.location,
            "chair": self.meta.chair,
            "day_key": self.meta.day_key,
            "slot_count": len(self.slots),
        }


@dataclass(frozen=True)
class DayBlock:
    """One contiguous local-time working interval on a weekday."""

    start: time
    end: time
    ends_next_day: bool = False  # True when end was given as "24:00"
    location: Optional[str] = None
    chair: Optional[str] = None

    def is_ordered(self) -> bool:
        return self.ends_next_day or self.start < self.end

    def overlaps(self, other: "DayBlock") -> bool:
        # Compare as seconds since local midnight, "24:00" counting as 86400
        def bounds(block: "DayBlock"):
            start = block.start.hour * 3600 + block.start.minute * 60 + block.start.second
            end = 86400 if block.ends_next_day else block.end.hour * 3600 + block.end.minute * 60 + block.end.second
            return start, end

        a_start, a_end = bounds(self)
        b_start, b_end = bounds(other)
        return a_start < b_end and b_start < a_end


@dataclass
class WeeklySchedule:
    """
    One version of a provider's recurring week.

    `blocks` and `breaks` map weekday keys ("mon".."sun") to ordered lists of
    DayBlock. The version applies inside [effective_from, effective_to);
    None means unbounded on that side.
    """

    provider_id: int
    blocks: Dict[str, List[DayBlock]] = field(default_factory=dict)
    breaks: Dict[str, List[DayBlock]] = field(default_factory=dict)
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None
    version: int = 1
    id: Optional[int] = None

    def covers(self, instant: datetime) -> bool:
        if self.effective_from is not None and instant < self.effective_from:
            return False
        if self.effective_to is not None and instant >= self.effective_to:
            return False
        return True


@dataclass(frozen=True)
class ScheduleException:
    """Absolute-UTC unavailability that overrides the weekly schedule."""

    kind: ExceptionKind
    start_utc: datetime
    end_utc: datetime
    id: Optional[int] = None
    provider_id: Optional[int] = None
    reason: Optional[str] = None
    location: Optional[str] = None
    chair: Optional[str] = None


@dataclass(frozen=True)
class BookedInterval:
    """Time already consumed by a confirmed booking assignment."""

    start_utc: datetime
    end_utc: datetime
    id: Optional[int] = None
    provider_id: Optional[int] = None
    appointment_id: Optional[str] = None
    slot_id: Optional[str] = None
    context: Optional[str] = None


@dataclass(frozen=True)
class ProviderProfile:
    """The provider fields the engine reads."""

    id: int
    name: str
    timezone: str
    skills: List[str] = field(default_factory=list)
    active: bool = True
    default_slot_minutes: int = 10
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    default_durations: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "timezone": self.timezone,
            "skills": list(self.skills),
            "active": self.active,
        }


@dataclass
class ProviderSuggestion:
    """One ranked entry of a multi-provider suggestion."""

    provider: ProviderProfile
    classification: WindowClassification
    free_minutes: float
    score: float
    earliest_start: Optional[datetime] = None

    @property
    def fits(self) -> bool:
        return self.classification == WindowClassification.FITS

    @property
    def partial(self) -> bool:
        return self.classification == WindowClassification.PARTIAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.to_dict(),
            "fits": self.fits,
            "partial": self.partial,
            "score": self.score,
            "free_minutes": self.free_minutes,
            "earliest_start": self.earliest_start.isoformat() if self.earliest_start else None,
        }


@dataclass(frozen=True)
class BookableSlot:
    """A discrete start time of a given duration inside a free slot."""

    start_utc: datetime
    end_utc: datetime
    local_label: str
    meta: SlotMeta = field(default_factory=SlotMeta)
