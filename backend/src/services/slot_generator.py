"""
Discrete bookable start times inside free slots.
"""

from datetime import timedelta
from typing import List, Sequence
from zoneinfo import ZoneInfo

from core.exceptions import InvalidRangeError
from shared_types.availability import BookableSlot, Interval
from utils.intervals import ceil_to_step


class SlotGenerator:
    """Lays a step grid over free slots and emits starts that fit a duration."""

    @staticmethod
    def format_local_label(start_utc, tz: ZoneInfo) -> str:
        """Label such as 'Mon 03 Mar 09:00' in the provider's zone."""
        return start_utc.astimezone(tz).strftime('%a %d %b %H:%M')

    @staticmethod
    def generate(
        free_slots: Sequence[Interval],
        tz: ZoneInfo,
        duration_minutes: int,
        step_minutes: int,
    ) -> List[BookableSlot]:
        """
        Generate bookable slots of `duration_minutes` on a `step_minutes` grid.

        Grid points are aligned to multiples of the step since the epoch, so
        starts are stable no matter where a free slot begins.

        Raises:
            InvalidRangeError: If duration or step is not positive
        """
        if duration_minutes <= 0:
            raise InvalidRangeError("Duration must be positive")
        if step_minutes <= 0:
            raise InvalidRangeError("Slot step must be positive")

        duration = timedelta(minutes=duration_minutes)
        step = timedelta(minutes=step_minutes)
        result: List[BookableSlot] = []
        seen = set()

        for slot in sorted(free_slots, key=lambda s: s.start_utc):
            cursor = ceil_to_step(slot.start_utc, step_minutes)
            while cursor + duration <= slot.end_utc:
                key = (cursor, slot.meta)
                if key not in seen:
                    seen.add(key)
                    result.append(BookableSlot(
                        start_utc=cursor,
                        end_utc=cursor + duration,
                        local_label=SlotGenerator.format_local_label(cursor, tz),
                        meta=slot.meta,
                    ))
                cursor += step

        result.sort(key=lambda s: (s.start_utc, s.meta.group_key()))
        return result
