"""
Storage contract for the availability engine and its SQLAlchemy implementation.

The pipeline services only ever talk to an AvailabilityStore, so the read
path can be exercised against an in-memory store in tests and the write
path can rely on the store to re-verify overlap inside its own transaction.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Generator, List, Optional, Protocol, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from core.constants import WEEKDAY_KEYS
from core.exceptions import AssignmentNotFoundError, ProviderNotFoundError, ScheduleNotFoundError
from models import BookingAssignment, Provider, ProviderException, ProviderSchedule
from shared_types.availability import (
    BookedInterval, DayBlock, ExceptionKind, ProviderProfile, ScheduleException, WeeklySchedule
)
from utils.datetime_utils import ensure_utc, require_utc

logger = logging.getLogger(__name__)


class AvailabilityStore(Protocol):
    """Read/write contract the engine depends on."""

    def get_provider(self, provider_id: int) -> ProviderProfile: ...

    def list_providers(self, skill: Optional[str] = None, active_only: bool = True) -> List[ProviderProfile]: ...

    def get_weekly_schedule(self, provider_id: int, as_of: datetime) -> WeeklySchedule: ...

    def list_schedule_versions(self, provider_id: int, from_utc: datetime, to_utc: datetime) -> List[WeeklySchedule]: ...

    def list_exceptions(self, provider_id: int, from_utc: datetime, to_utc: datetime) -> List[ScheduleException]: ...

    def list_booking_assignments(
        self,
        provider_id: int,
        from_utc: datetime,
        to_utc: datetime,
        exclude_assignment_id: Optional[int] = None,
    ) -> List[BookedInterval]: ...

    def get_booking_assignment(self, assignment_id: int) -> Optional[BookedInterval]: ...

    def lock_provider(self, provider_id: int): ...

    def commit_booking_assignment(
        self,
        assignment: BookedInterval,
        replaces_assignment_id: Optional[int] = None,
    ) -> Tuple[bool, Optional[BookedInterval]]: ...

    def delete_booking_assignment(self, assignment_id: int) -> bool: ...


# ===== Row conversion =====

def provider_to_profile(provider: Provider) -> ProviderProfile:
    """Convert a Provider row into the engine's ProviderProfile."""
    return ProviderProfile(
        id=provider.id,
        name=provider.name,
        timezone=provider.timezone,
        skills=list(provider.skills or []),
        active=bool(provider.is_active),
        default_slot_minutes=provider.default_slot_minutes,
        buffer_before_minutes=provider.buffer_before_minutes or 0,
        buffer_after_minutes=provider.buffer_after_minutes or 0,
        default_durations={k: int(v) for k, v in (provider.default_durations or {}).items()},
    )


def schedule_to_weekly(schedule: ProviderSchedule) -> WeeklySchedule:
    """Convert a schedule version and its blocks into a WeeklySchedule."""
    blocks: Dict[str, List[DayBlock]] = {}
    breaks: Dict[str, List[DayBlock]] = {}
    for row in schedule.blocks:
        target = breaks if row.is_break else blocks
        target.setdefault(WEEKDAY_KEYS[row.day_of_week], []).append(DayBlock(
            start=row.start_time,
            end=row.end_time,
            ends_next_day=bool(row.ends_next_day),
            location=row.location,
            chair=row.chair,
        ))
    for day_blocks in list(blocks.values()) + list(breaks.values()):
        day_blocks.sort(key=lambda b: b.start)

    return WeeklySchedule(
        provider_id=schedule.provider_id,
        blocks=blocks,
        breaks=breaks,
        effective_from=ensure_utc(schedule.effective_from),
        effective_to=ensure_utc(schedule.effective_to),
        version=schedule.version,
        id=schedule.id,
    )


def exception_to_domain(row: ProviderException) -> ScheduleException:
    return ScheduleException(
        kind=ExceptionKind(row.kind),
        start_utc=require_utc(row.start_utc),
        end_utc=require_utc(row.end_utc),
        id=row.id,
        provider_id=row.provider_id,
        reason=row.reason,
        location=row.location,
        chair=row.chair,
    )


def assignment_to_domain(row: BookingAssignment) -> BookedInterval:
    return BookedInterval(
        start_utc=require_utc(row.start_utc),
        end_utc=require_utc(row.end_utc),
        id=row.id,
        provider_id=row.provider_id,
        appointment_id=row.appointment_id,
        slot_id=row.slot_id,
        context=row.context,
    )


class SqlAlchemyAvailabilityStore:
    """
    AvailabilityStore backed by a SQLAlchemy session.

    Reads never commit. The write methods commit their own transaction, which
    also releases the provider row lock taken by lock_provider().
    """

    def __init__(self, db: Session):
        self.db = db

    def get_provider(self, provider_id: int) -> ProviderProfile:
        provider = self.db.query(Provider).filter(Provider.id == provider_id).first()
        if not provider:
            raise ProviderNotFoundError(f"Provider {provider_id} not found")
        return provider_to_profile(provider)

    def list_providers(self, skill: Optional[str] = None, active_only: bool = True) -> List[ProviderProfile]:
        query = self.db.query(Provider)
        if active_only:
            query = query.filter(Provider.is_active == True)  # noqa: E712
        providers = query.order_by(Provider.id).all()

        # Skills live in a JSON list; filter in Python so SQLite and PostgreSQL behave the same
        if skill:
            providers = [p for p in providers if p.has_skill(skill)]
        return [provider_to_profile(p) for p in providers]

    def get_weekly_schedule(self, provider_id: int, as_of: datetime) -> WeeklySchedule:
        as_of = require_utc(as_of)
        versions = self.db.query(ProviderSchedule).options(
            selectinload(ProviderSchedule.blocks)
        ).filter(
            ProviderSchedule.provider_id == provider_id,
            or_(ProviderSchedule.effective_from == None, ProviderSchedule.effective_from <= as_of),  # noqa: E711
            or_(ProviderSchedule.effective_to == None, ProviderSchedule.effective_to > as_of),  # noqa: E711
        ).order_by(ProviderSchedule.version.desc()).all()

        if not versions:
            raise ScheduleNotFoundError(
                f"No schedule version for provider {provider_id} at {as_of.isoformat()}"
            )
        return schedule_to_weekly(versions[0])

    def list_schedule_versions(self, provider_id: int, from_utc: datetime, to_utc: datetime) -> List[WeeklySchedule]:
        from_utc, to_utc = require_utc(from_utc), require_utc(to_utc)
        versions = self.db.query(ProviderSchedule).options(
            selectinload(ProviderSchedule.blocks)
        ).filter(
            ProviderSchedule.provider_id == provider_id,
            or_(ProviderSchedule.effective_from == None, ProviderSchedule.effective_from < to_utc),  # noqa: E711
            or_(ProviderSchedule.effective_to == None, ProviderSchedule.effective_to > from_utc),  # noqa: E711
        ).order_by(ProviderSchedule.version).all()
        return [schedule_to_weekly(v) for v in versions]

    def list_exceptions(self, provider_id: int, from_utc: datetime, to_utc: datetime) -> List[ScheduleException]:
        rows = self.db.query(ProviderException).filter(
            ProviderException.provider_id == provider_id,
            ProviderException.start_utc < require_utc(to_utc),
            ProviderException.end_utc > require_utc(from_utc),
        ).order_by(ProviderException.start_utc).all()
        return [exception_to_domain(r) for r in rows]

    def _overlapping_assignments_query(
        self,
        provider_id: int,
        from_utc: datetime,
        to_utc: datetime,
        exclude_assignment_id: Optional[int] = None,
    ):
        filters = [
            BookingAssignment.provider_id == provider_id,
            BookingAssignment.start_utc < require_utc(to_utc),
            BookingAssignment.end_utc > require_utc(from_utc),
        ]
        if exclude_assignment_id is not None:
            filters.append(BookingAssignment.id != exclude_assignment_id)
        return self.db.query(BookingAssignment).filter(and_(*filters)).order_by(BookingAssignment.start_utc)

    def list_booking_assignments(
        self,
        provider_id: int,
        from_utc: datetime,
        to_utc: datetime,
        exclude_assignment_id: Optional[int] = None,
    ) -> List[BookedInterval]:
        rows = self._overlapping_assignments_query(provider_id, from_utc, to_utc, exclude_assignment_id).all()
        return [assignment_to_domain(r) for r in rows]

    def get_booking_assignment(self, assignment_id: int) -> Optional[BookedInterval]:
        row = self.db.query(BookingAssignment).filter(BookingAssignment.id == assignment_id).first()
        return assignment_to_domain(row) if row else None

    @contextmanager
    def lock_provider(self, provider_id: int) -> Generator[None, None, None]:
        """
        Hold a row lock on the provider for the duration of the block.

        Uses SELECT ... FOR UPDATE, so concurrent writers in other processes
        wait on PostgreSQL. SQLite ignores the clause and relies on the
        in-process lock held by the caller. Anything left uncommitted when the
        block exits is rolled back, which also releases the row lock.
        """
        provider = self.db.query(Provider).filter(Provider.id == provider_id).with_for_update().first()
        if not provider:
            self.db.rollback()
            raise ProviderNotFoundError(f"Provider {provider_id} not found")
        try:
            yield
        finally:
            if self.db.in_transaction():
                self.db.rollback()

    def commit_booking_assignment(
        self,
        assignment: BookedInterval,
        replaces_assignment_id: Optional[int] = None,
    ) -> Tuple[bool, Optional[BookedInterval]]:
        """
        Insert an assignment unless it overlaps another one of the same provider.

        When `replaces_assignment_id` is given, that row is ignored by the
        overlap check and deleted in the same transaction (reschedule). If it
        no longer exists nothing is inserted.

        Returns:
            (True, stored assignment) on success, (False, colliding assignment)
            if an overlapping assignment already exists

        Raises:
            AssignmentNotFoundError: If the replaced assignment is gone
        """
        if assignment.provider_id is None:
            raise ValueError("Assignment must reference a provider")

        try:
            existing = self._overlapping_assignments_query(
                assignment.provider_id,
                assignment.start_utc,
                assignment.end_utc,
                exclude_assignment_id=replaces_assignment_id,
            ).first()
            if existing:
                self.db.rollback()
                return False, assignment_to_domain(existing)

            if replaces_assignment_id is not None:
                replaced = self.db.query(BookingAssignment).filter(
                    BookingAssignment.id == replaces_assignment_id,
                    BookingAssignment.provider_id == assignment.provider_id,
                ).delete(synchronize_session=False)
                if not replaced:
                    self.db.rollback()
                    raise AssignmentNotFoundError(
                        f"Booking assignment {replaces_assignment_id} not found for provider {assignment.provider_id}"
                    )

            row = BookingAssignment(
                provider_id=assignment.provider_id,
                appointment_id=assignment.appointment_id,
                slot_id=assignment.slot_id,
                start_utc=require_utc(assignment.start_utc),
                end_utc=require_utc(assignment.end_utc),
                context=assignment.context,
            )
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Failed to commit booking assignment for provider {assignment.provider_id}")
            raise

        return True, assignment_to_domain(row)

    def delete_booking_assignment(self, assignment_id: int) -> bool:
        deleted = self.db.query(BookingAssignment).filter(
            BookingAssignment.id == assignment_id
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0
