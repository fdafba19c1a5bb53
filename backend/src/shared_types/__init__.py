"""
Shared type definitions for the availability engine.

This module contains dataclasses and types that are used across multiple services.
"""

from shared_types.availability import (
    AvailabilitySlot,
    BookableSlot,
    BookedInterval,
    DayBlock,
    ExceptionKind,
    Interval,
    ProviderProfile,
    ProviderSuggestion,
    ScheduleException,
    SlotMeta,
    SlotRange,
    WeeklySchedule,
    WindowClassification,
)

__all__ = [
    "AvailabilitySlot",
    "BookableSlot",
    "BookedInterval",
    "DayBlock",
    "ExceptionKind",
    "Interval",
    "ProviderProfile",
    "ProviderSuggestion",
    "ScheduleException",
    "SlotMeta",
    "SlotRange",
    "WeeklySchedule",
    "WindowClassification",
]
