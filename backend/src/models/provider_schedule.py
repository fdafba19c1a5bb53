"""
Provider schedule models for versioned weekly working hours.

Schedules are never edited in place. Each change creates a new version with
its own effective window so that historical availability queries stay
reproducible. Each version owns its day blocks: working periods plus
optional weekly breaks, several per day (e.g., 9am-12pm, 2pm-6pm).
"""

from datetime import datetime, time
from typing import Optional

from sqlalchemy import String, Time, TIMESTAMP, ForeignKey, Index, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import WEEKDAY_KEYS
from core.database import Base


class ProviderSchedule(Base):
    """
    One version of a provider's recurring weekly schedule.

    The version applies to instants inside [effective_from, effective_to);
    a null bound is open-ended.
    """

    __tablename__ = "provider_schedules"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    provider_id: Mapped[int] = mapped_column(ForeignKey("providers.id", ondelete="CASCADE"))

    version: Mapped[int] = mapped_column(default=1)
    """Monotonically increasing per provider."""

    effective_from: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    effective_to: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    provider = relationship("Provider", back_populates="schedules")
    blocks = relationship(
        "ScheduleBlock",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="ScheduleBlock.day_of_week, ScheduleBlock.start_time",
    )

    __table_args__ = (
        Index('idx_provider_schedules_provider_effective', 'provider_id', 'effective_from', 'effective_to'),
        UniqueConstraint('provider_id', 'version', name='uq_provider_schedules_provider_version'),
    )

    def __repr__(self) -> str:
        return (
            f"<ProviderSchedule(id={self.id}, provider_id={self.provider_id}, v{self.version}, "
            f"{self.effective_from}-{self.effective_to})>"
        )


class ScheduleBlock(Base):
    """
    One working period (or break) of a schedule version on a weekday.

    Times are local wall-clock values in the provider's time zone.
    `ends_next_day` marks a block whose end was given as "24:00".
    """

    __tablename__ = "schedule_blocks"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    schedule_id: Mapped[int] = mapped_column(ForeignKey("provider_schedules.id", ondelete="CASCADE"))

    day_of_week: Mapped[int] = mapped_column()
    """Day of the week (0=Monday, 1=Tuesday, ..., 6=Sunday)."""

    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)
    ends_next_day: Mapped[bool] = mapped_column(default=False)

    is_break: Mapped[bool] = mapped_column(default=False)
    """Breaks are subtracted from the working blocks of the same version."""

    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    chair: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    schedule = relationship("ProviderSchedule", back_populates="blocks")

    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='check_valid_day_of_week'),
        Index('idx_schedule_blocks_schedule_day', 'schedule_id', 'day_of_week'),
    )

    @property
    def day_key(self) -> str:
        return WEEKDAY_KEYS[self.day_of_week]

    def __repr__(self) -> str:
        kind = "break" if self.is_break else "block"
        return f"<ScheduleBlock({kind}, schedule_id={self.schedule_id}, day={self.day_key}, {self.start_time}-{self.end_time})>"
