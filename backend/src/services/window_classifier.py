"""
Classification of a candidate window against merged free ranges.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from shared_types.availability import SlotRange, WindowClassification
from services.recurrence_expander import validate_range
from utils.intervals import covers, overlaps


class WindowClassifier:
    """Fits / Partial / Unavailable, taking the best outcome across ranges."""

    @staticmethod
    def classify(
        ranges: Iterable[SlotRange],
        candidate_from: datetime,
        candidate_to: datetime,
    ) -> WindowClassification:
        """
        Classify [candidate_from, candidate_to).

        Fits when one range contains the whole candidate, Partial when no range
        fits but at least one overlaps it, Unavailable otherwise.

        Raises:
            InvalidRangeError: If candidate_from >= candidate_to
        """
        candidate_from, candidate_to = validate_range(candidate_from, candidate_to)

        ranges = list(ranges)
        if covers(ranges, candidate_from, candidate_to):
            return WindowClassification.FITS
        if any(overlaps(r.start_utc, r.end_utc, candidate_from, candidate_to) for r in ranges):
            return WindowClassification.PARTIAL
        return WindowClassification.UNAVAILABLE

    @staticmethod
    def earliest_opening(
        ranges: Sequence[SlotRange],
        window_from: datetime,
        window_to: datetime,
        duration_minutes: int,
    ) -> Optional[datetime]:
        """
        Earliest start inside the window where `duration_minutes` of free time fit.

        Ranges are clipped to the window first; returns None if no clipped
        range is long enough.
        """
        window_from, window_to = validate_range(window_from, window_to)
        needed = timedelta(minutes=duration_minutes)
        starts = []
        for r in ranges:
            start = max(r.start_utc, window_from)
            end = min(r.end_utc, window_to)
            if end - start >= needed:
                starts.append(start)
        return min(starts) if starts else None
