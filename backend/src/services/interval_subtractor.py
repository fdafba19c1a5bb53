"""
Subtraction stages of the availability pipeline.

ExceptionSubtractor removes time off and manual blocks; BookingSubtractor
removes confirmed booking assignments. They share the same sweep but are
kept apart because bookings come from the volatile booking store and are
widened by the provider's buffers.
"""

from datetime import timedelta
from typing import Iterable, List, Optional, Sequence

from core.config import AVAILABILITY_MIN_GRANULARITY_MINUTES
from shared_types.availability import BookedInterval, Interval, ScheduleException
from utils.intervals import subtract_intervals


def _default_granularity() -> timedelta:
    return timedelta(minutes=AVAILABILITY_MIN_GRANULARITY_MINUTES)


class _Span:
    """Bare [start_utc, end_utc) span used for buffered removals."""

    __slots__ = ("start_utc", "end_utc")

    def __init__(self, start_utc, end_utc):
        self.start_utc = start_utc
        self.end_utc = end_utc


class ExceptionSubtractor:
    """Removes Exception intervals from expanded schedule intervals."""

    @staticmethod
    def subtract(
        intervals: Sequence[Interval],
        exceptions: Iterable[ScheduleException],
        granularity: Optional[timedelta] = None,
    ) -> List[Interval]:
        """
        Subtract exceptions regardless of their location or chair.

        Back-to-back exceptions also remove any gap between them that is
        shorter than `granularity`; remaining fragments shorter than
        `granularity` are dropped.
        """
        if granularity is None:
            granularity = _default_granularity()
        return subtract_intervals(intervals, list(exceptions), granularity)


class BookingSubtractor:
    """Removes booked intervals (with provider buffers) to produce free slots."""

    @staticmethod
    def widen(
        bookings: Iterable[BookedInterval],
        buffer_before_minutes: int = 0,
        buffer_after_minutes: int = 0,
        exclude_assignment_id: Optional[int] = None,
    ) -> List[_Span]:
        """Apply buffers around each booking, skipping the excluded assignment."""
        before = timedelta(minutes=buffer_before_minutes or 0)
        after = timedelta(minutes=buffer_after_minutes or 0)
        return [
            _Span(b.start_utc - before, b.end_utc + after)
            for b in bookings
            if exclude_assignment_id is None or b.id != exclude_assignment_id
        ]

    @staticmethod
    def subtract(
        intervals: Sequence[Interval],
        bookings: Iterable[BookedInterval],
        buffer_before_minutes: int = 0,
        buffer_after_minutes: int = 0,
        exclude_assignment_id: Optional[int] = None,
        granularity: Optional[timedelta] = None,
    ) -> List[Interval]:
        if granularity is None:
            granularity = _default_granularity()
        spans = BookingSubtractor.widen(
            bookings, buffer_before_minutes, buffer_after_minutes, exclude_assignment_id
        )
        return subtract_intervals(intervals, spans, granularity)
