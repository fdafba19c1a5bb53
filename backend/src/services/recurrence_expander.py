"""
Expansion of recurring weekly schedules into concrete UTC intervals.

Every calendar day in the provider's zone that touches the requested range
is visited; each DayBlock of that weekday is converted to UTC with the
offset in force on that specific day, so blocks on DST transition days
shift correctly.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from core.constants import WEEKDAY_KEYS
from core.exceptions import InvalidRangeError
from shared_types.availability import DayBlock, Interval, SlotMeta, WeeklySchedule
from utils.datetime_utils import local_wall_clock_to_utc, require_utc
from utils.intervals import clip_interval, subtract_intervals

logger = logging.getLogger(__name__)


def validate_range(from_utc: datetime, to_utc: datetime) -> Tuple[datetime, datetime]:
    """
    Normalise a query range to UTC and reject empty or inverted ranges.

    Raises:
        InvalidRangeError: If either bound is missing or from_utc >= to_utc
    """
    if from_utc is None or to_utc is None:
        raise InvalidRangeError("Both range bounds are required")
    from_utc, to_utc = require_utc(from_utc), require_utc(to_utc)
    if from_utc >= to_utc:
        raise InvalidRangeError(
            f"Range start {from_utc.isoformat()} must be before end {to_utc.isoformat()}"
        )
    return from_utc, to_utc


class RecurrenceExpander:
    """Turns WeeklySchedule versions into ordered UTC intervals."""

    @staticmethod
    def _expand_blocks(
        blocks_by_day,
        tz: ZoneInfo,
        first_day,
        last_day,
    ) -> List[Interval]:
        intervals: List[Interval] = []
        day = first_day
        while day <= last_day:
            day_key = WEEKDAY_KEYS[day.weekday()]
            block: DayBlock
            for block in blocks_by_day.get(day_key, []):
                start = local_wall_clock_to_utc(day, block.start, tz)
                end = local_wall_clock_to_utc(day, block.end, tz, next_day=block.ends_next_day)
                if end <= start:
                    # Block swallowed by a DST gap
                    logger.debug(f"Skipping empty block {block} on {day}")
                    continue
                intervals.append(Interval(
                    start_utc=start,
                    end_utc=end,
                    meta=SlotMeta(location=block.location, chair=block.chair, day_key=day_key),
                ))
            day += timedelta(days=1)
        return intervals

    @staticmethod
    def expand(
        schedule: WeeklySchedule,
        tz: ZoneInfo,
        from_utc: datetime,
        to_utc: datetime,
    ) -> List[Interval]:
        """
        Expand one schedule version over [from_utc, to_utc).

        Weekly breaks are removed from the working blocks. Output is clipped
        both to the version's effective window and to the query range.

        Args:
            schedule: Weekly schedule version
            tz: Provider's zone
            from_utc: Range start (inclusive)
            to_utc: Range end (exclusive)

        Returns:
            Intervals ordered by start

        Raises:
            InvalidRangeError: If from_utc >= to_utc
        """
        from_utc, to_utc = validate_range(from_utc, to_utc)

        window_start = from_utc
        window_end = to_utc
        if schedule.effective_from is not None:
            window_start = max(window_start, schedule.effective_from)
        if schedule.effective_to is not None:
            window_end = min(window_end, schedule.effective_to)
        if window_start >= window_end:
            return []

        # One local day of slack on each side covers blocks that straddle the range edges
        first_day = window_start.astimezone(tz).date() - timedelta(days=1)
        last_day = window_end.astimezone(tz).date()

        intervals = RecurrenceExpander._expand_blocks(schedule.blocks, tz, first_day, last_day)
        if any(schedule.breaks.values()):
            breaks = RecurrenceExpander._expand_blocks(schedule.breaks, tz, first_day, last_day)
            intervals = subtract_intervals(intervals, breaks, granularity=timedelta(0))

        clipped: List[Interval] = []
        for interval in intervals:
            piece = clip_interval(interval, window_start, window_end)
            if piece is not None:
                clipped.append(piece)
        clipped.sort(key=lambda iv: (iv.start_utc, iv.end_utc))
        return clipped

    @staticmethod
    def expand_versions(
        versions: Sequence[WeeklySchedule],
        tz: ZoneInfo,
        from_utc: datetime,
        to_utc: datetime,
    ) -> List[Interval]:
        """
        Expand every schedule version inside its own effective window.

        Where versions overlap, the later version wins for the overlapping
        instants.
        """
        from_utc, to_utc = validate_range(from_utc, to_utc)
        ordered = sorted(versions, key=lambda v: v.version)

        result: List[Interval] = []
        for index, version in enumerate(ordered):
            expanded = RecurrenceExpander.expand(version, tz, from_utc, to_utc)
            newer = ordered[index + 1:]
            if newer:
                expanded = subtract_intervals(
                    expanded,
                    [_EffectiveWindow(v.effective_from, v.effective_to, from_utc, to_utc) for v in newer],
                    granularity=timedelta(0),
                )
            result.extend(expanded)

        result.sort(key=lambda iv: (iv.start_utc, iv.end_utc))
        return result


class _EffectiveWindow:
    """Effective window of a version bounded to the query range."""

    def __init__(self, start: Optional[datetime], end: Optional[datetime], range_start: datetime, range_end: datetime):
        self.start_utc = range_start if start is None else max(start, range_start)
        self.end_utc = range_end if end is None else min(end, range_end)
