"""
Schedule service for versioned weekly working hours.

A schedule is never edited in place: saving a new weekly schedule creates a
new version and closes the currently open one at the new version's
effective_from.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core.constants import WEEKDAY_KEYS
from core.exceptions import InvalidScheduleError
from models import ProviderSchedule, ScheduleBlock
from services.availability_store import SqlAlchemyAvailabilityStore, schedule_to_weekly
from services.provider_service import ProviderService
from shared_types.availability import DayBlock, WeeklySchedule
from utils.datetime_utils import ensure_utc, format_time_of_day, parse_time_of_day, utc_now

logger = logging.getLogger(__name__)


def normalize_day_key(day: str) -> str:
    """Accept 'mon', 'Monday', 'MON' and return the three-letter key."""
    key = (day or "").strip().lower()[:3]
    if key not in WEEKDAY_KEYS:
        raise InvalidScheduleError(f"Unknown weekday '{day}'")
    return key


class ScheduleService:
    """Service class for weekly schedule operations."""

    @staticmethod
    def parse_day_blocks(days: Dict[str, List[Dict[str, Any]]]) -> Dict[str, List[DayBlock]]:
        """
        Parse and validate a {weekday: [{start, end, location?, chair?}]} payload.

        Times are local "HH:MM" strings; "24:00" is allowed as an end time.

        Raises:
            InvalidScheduleError: If a time is malformed, a block has
                start >= end, or two blocks of the same day overlap
        """
        result: Dict[str, List[DayBlock]] = {}
        for day, raw_blocks in (days or {}).items():
            key = normalize_day_key(day)
            blocks: List[DayBlock] = []
            for raw in raw_blocks or []:
                try:
                    start, start_rolls = parse_time_of_day(raw.get("start"))
                    end, end_rolls = parse_time_of_day(raw.get("end"))
                except (ValueError, AttributeError) as e:
                    raise InvalidScheduleError(f"Invalid time on {key}: {e}") from e
                if start_rolls:
                    raise InvalidScheduleError(f"Block on {key} cannot start at 24:00")

                block = DayBlock(
                    start=start,
                    end=end,
                    ends_next_day=end_rolls,
                    location=raw.get("location"),
                    chair=raw.get("chair"),
                )
                if not block.is_ordered():
                    raise InvalidScheduleError(
                        f"Block on {key} must start before it ends ({raw.get('start')}-{raw.get('end')})"
                    )
                blocks.append(block)

            blocks.sort(key=lambda b: b.start)
            for previous, current in zip(blocks, blocks[1:]):
                if previous.overlaps(current):
                    raise InvalidScheduleError(
                        f"Blocks on {key} overlap: "
                        f"{format_time_of_day(previous.start)}-{format_time_of_day(previous.end, previous.ends_next_day)} and "
                        f"{format_time_of_day(current.start)}-{format_time_of_day(current.end, current.ends_next_day)}"
                    )
            result[key] = blocks
        return result

    @staticmethod
    def create_schedule_version(
        db: Session,
        provider_id: int,
        days: Dict[str, List[Dict[str, Any]]],
        breaks: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        effective_from: Optional[datetime] = None,
    ) -> WeeklySchedule:
        """
        Save a new weekly schedule version for a provider.

        The first version defaults to an open start so it applies to all past
        dates; later versions default to take effect now and may not start in
        the past, so availability already computed for past dates never
        changes. The previously open version is closed at the new version's
        effective_from.

        Raises:
            ProviderNotFoundError: If the provider does not exist
            InvalidScheduleError: If blocks are invalid, or a later version would
                start in the past or before the latest existing version
        """
        ProviderService.get_provider(db, provider_id)
        blocks = ScheduleService.parse_day_blocks(days)
        break_blocks = ScheduleService.parse_day_blocks(breaks or {})

        latest = db.query(ProviderSchedule).filter(
            ProviderSchedule.provider_id == provider_id
        ).order_by(ProviderSchedule.version.desc()).first()

        effective_from = ensure_utc(effective_from)
        if latest is not None:
            now = utc_now()
            if effective_from is None:
                effective_from = now
            if effective_from < now:
                raise InvalidScheduleError(
                    f"New schedule cannot take effect in the past ({effective_from.isoformat()})"
                )
            latest_from = ensure_utc(latest.effective_from)
            if latest_from is not None and effective_from <= latest_from:
                raise InvalidScheduleError(
                    f"New schedule must take effect after {latest_from.isoformat()}"
                )

        try:
            open_versions = db.query(ProviderSchedule).filter(
                ProviderSchedule.provider_id == provider_id,
                ProviderSchedule.effective_to == None,  # noqa: E711
            ).all()
            for version in open_versions:
                version.effective_to = effective_from

            schedule = ProviderSchedule(
                provider_id=provider_id,
                version=(latest.version + 1) if latest else 1,
                effective_from=effective_from,
                effective_to=None,
            )
            for collection, is_break in ((blocks, False), (break_blocks, True)):
                for day_key, day_blocks in collection.items():
                    for block in day_blocks:
                        schedule.blocks.append(ScheduleBlock(
                            day_of_week=WEEKDAY_KEYS.index(day_key),
                            start_time=block.start,
                            end_time=block.end,
                            ends_next_day=block.ends_next_day,
                            is_break=is_break,
                            location=block.location,
                            chair=block.chair,
                        ))
            db.add(schedule)
            db.commit()
            db.refresh(schedule)
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Created schedule version {schedule.version} for provider {provider_id} "
            f"effective from {effective_from.isoformat() if effective_from else 'the beginning'}"
        )
        return schedule_to_weekly(schedule)

    @staticmethod
    def get_current_schedule(db: Session, provider_id: int, as_of: Optional[datetime] = None) -> WeeklySchedule:
        """
        Get the schedule version in force at `as_of` (default: now).

        Raises:
            ProviderNotFoundError: If the provider does not exist
            ScheduleNotFoundError: If no version covers `as_of`
        """
        ProviderService.get_provider(db, provider_id)
        store = SqlAlchemyAvailabilityStore(db)
        return store.get_weekly_schedule(provider_id, as_of or utc_now())

    @staticmethod
    def schedule_to_dict(schedule: WeeklySchedule) -> Dict[str, Any]:
        def blocks_payload(blocks_by_day: Dict[str, List[DayBlock]]) -> Dict[str, List[Dict[str, Any]]]:
            return {
                day: [
                    {
                        "start": format_time_of_day(b.start),
                        "end": format_time_of_day(b.end, b.ends_next_day),
                        "location": b.location,
                        "chair": b.chair,
                    }
                    for b in blocks_by_day.get(day, [])
                ]
                for day in WEEKDAY_KEYS
            }

        return {
            "id": schedule.id,
            "provider_id": schedule.provider_id,
            "version": schedule.version,
            "effective_from": schedule.effective_from.isoformat() if schedule.effective_from else None,
            "effective_to": schedule.effective_to.isoformat() if schedule.effective_to else None,
            "days": blocks_payload(schedule.blocks),
            "breaks": blocks_payload(schedule.breaks),
        }
