"""
Merging of atomic free slots into continuous ranges.
"""

from datetime import timedelta
from typing import Callable, Dict, List, Optional, Sequence, Union

from core.config import AVAILABILITY_ENFORCE_GROUPING, AVAILABILITY_MERGE_TOLERANCE_MS
from core.exceptions import InvalidRangeError
from shared_types.availability import Interval, SlotMeta, SlotRange

Mergeable = Union[Interval, SlotRange]
KeyFunction = Callable[[SlotMeta], str]


def default_group_key(meta: SlotMeta) -> str:
    """location|chair|day"""
    return meta.group_key()


class SlotMerger:
    """
    Folds slots into SlotRanges.

    Within one grouping key the slots are walked in start order and a slot is
    folded into the running range when it starts no more than the tolerance
    after the range ends. Merging ranges that were already merged with the
    same settings gives back an equal list.
    """

    @staticmethod
    def merge(
        slots: Sequence[Mergeable],
        tolerance_ms: Optional[int] = None,
        enforce_grouping: Optional[bool] = None,
        key_fn: Optional[KeyFunction] = None,
    ) -> List[SlotRange]:
        """
        Merge slots into continuous ranges.

        Args:
            slots: Atomic free slots, or SlotRanges from a previous merge
            tolerance_ms: Largest gap bridged between two slots (config default)
            enforce_grouping: Only merge slots sharing a grouping key (config default)
            key_fn: Grouping key function, location|chair|day by default

        Returns:
            Ranges ordered by start, then end, then key

        Raises:
            InvalidRangeError: If tolerance_ms is negative
        """
        if tolerance_ms is None:
            tolerance_ms = AVAILABILITY_MERGE_TOLERANCE_MS
        if tolerance_ms < 0:
            raise InvalidRangeError("Merge tolerance cannot be negative")
        if enforce_grouping is None:
            enforce_grouping = AVAILABILITY_ENFORCE_GROUPING
        key_fn = key_fn or default_group_key
        tolerance = timedelta(milliseconds=tolerance_ms)

        groups: Dict[Optional[str], List[Mergeable]] = {}
        for slot in slots:
            key = key_fn(slot.meta) if enforce_grouping else None
            groups.setdefault(key, []).append(slot)

        ranges: List[SlotRange] = []
        for key, members in groups.items():
            current: Optional[SlotRange] = None
            for slot in sorted(members, key=lambda s: (s.start_utc, s.end_utc)):
                if current is not None and slot.start_utc - current.end_utc <= tolerance:
                    current.end_utc = max(current.end_utc, slot.end_utc)
                    current.slots.extend(_sources(slot))
                    continue
                if current is not None:
                    ranges.append(current)
                current = SlotRange(
                    start_utc=slot.start_utc,
                    end_utc=slot.end_utc,
                    group_key=key,
                    meta=slot.meta if enforce_grouping else SlotMeta(),
                    slots=list(_sources(slot)),
                )
            if current is not None:
                ranges.append(current)

        ranges.sort(key=lambda r: (r.start_utc, r.end_utc, r.group_key or ""))
        return ranges


def _sources(slot: Mergeable) -> List[Interval]:
    if isinstance(slot, SlotRange):
        return list(slot.slots)
    return [slot]
