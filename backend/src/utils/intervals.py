"""
Interval algebra over half-open UTC intervals.

Intervals are Interval dataclasses (start_utc, end_utc, meta); "removal"
intervals only need start_utc/end_utc attributes, so exceptions and booked
intervals can be passed directly.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from shared_types.availability import Interval

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class HasSpan(Protocol):
    start_utc: datetime
    end_utc: datetime


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap test; touching intervals do not overlap."""
    return a_start < b_end and b_start < a_end


def coalesce_spans(
    spans: Iterable[HasSpan],
    granularity: timedelta = timedelta(0),
) -> List[Tuple[datetime, datetime]]:
    """
    Sort spans and merge those that overlap or sit closer than `granularity`.

    Returns plain (start, end) tuples, ordered and pairwise disjoint.
    """
    ordered = sorted(
        ((s.start_utc, s.end_utc) for s in spans if s.start_utc < s.end_utc),
        key=lambda pair: pair[0],
    )
    merged: List[Tuple[datetime, datetime]] = []
    for start, end in ordered:
        if merged and (start <= merged[-1][1] or start - merged[-1][1] < granularity):
            last_start, last_end = merged[-1]
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def subtract_intervals(
    base: Sequence[Interval],
    removals: Iterable[HasSpan],
    granularity: timedelta = timedelta(minutes=1),
) -> List[Interval]:
    """
    Remove every removal span from the base intervals.

    Each base interval becomes zero, one or several fragments; fragments
    shorter than `granularity` are dropped. Both inputs are sorted once and
    swept together, so the cost is O((n + m) log(n + m)) and the result does
    not depend on the order of `removals`.
    """
    cuts = coalesce_spans(removals, granularity)
    result: List[Interval] = []
    cursor = 0  # first cut that may still touch the current base interval

    for interval in sorted(base, key=lambda iv: iv.start_utc):
        # Cuts ending before this interval starts cannot touch later ones either
        while cursor < len(cuts) and cuts[cursor][1] <= interval.start_utc:
            cursor += 1

        fragment_start = interval.start_utc
        index = cursor
        while index < len(cuts) and cuts[index][0] < interval.end_utc:
            cut_start, cut_end = cuts[index]
            if cut_start > fragment_start:
                _append_fragment(result, interval, fragment_start, cut_start, granularity)
            fragment_start = max(fragment_start, cut_end)
            if fragment_start >= interval.end_utc:
                break
            index += 1

        if fragment_start < interval.end_utc:
            _append_fragment(result, interval, fragment_start, interval.end_utc, granularity)

    return result


def _append_fragment(
    out: List[Interval],
    source: Interval,
    start: datetime,
    end: datetime,
    granularity: timedelta,
) -> None:
    if end - start < granularity or end <= start:
        return
    out.append(Interval(start_utc=start, end_utc=end, meta=source.meta))


def clip_interval(interval: Interval, start: Optional[datetime], end: Optional[datetime]) -> Optional[Interval]:
    """Clip to [start, end); None bounds are open. Returns None if nothing is left."""
    new_start = interval.start_utc if start is None else max(interval.start_utc, start)
    new_end = interval.end_utc if end is None else min(interval.end_utc, end)
    if new_start >= new_end:
        return None
    return Interval(start_utc=new_start, end_utc=new_end, meta=interval.meta)


def total_minutes(intervals: Iterable[HasSpan]) -> float:
    """Length of the union of the given spans, in minutes."""
    return sum(
        (end - start).total_seconds() / 60
        for start, end in coalesce_spans(intervals)
    )


def covers(intervals: Iterable[HasSpan], start: datetime, end: datetime) -> bool:
    """True if a single interval contains [start, end)."""
    return any(iv.start_utc <= start and iv.end_utc >= end for iv in intervals)


def floor_to_step(dt: datetime, step_minutes: int) -> datetime:
    """Floor a UTC instant to a multiple of `step_minutes` since the epoch."""
    step = timedelta(minutes=step_minutes)
    return _EPOCH + ((dt - _EPOCH) // step) * step


def ceil_to_step(dt: datetime, step_minutes: int) -> datetime:
    floored = floor_to_step(dt, step_minutes)
    if floored < dt:
        return floored + timedelta(minutes=step_minutes)
    return floored
