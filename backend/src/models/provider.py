"""
Provider model for practitioners whose time can be booked.

A provider owns versioned weekly schedules, time-off exceptions and booking
assignments by reference; each of those is mutated independently of the
provider row.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, String, TIMESTAMP, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import DEFAULT_SLOT_MINUTES, MAX_STRING_LENGTH
from core.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Provider(Base):
    """
    Provider entity.

    Skills are stored as an ordered, de-duplicated list of treatment
    identifiers. The IANA time zone is used to interpret every weekly
    schedule version of this provider.
    """

    __tablename__ = "providers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the provider."""

    name: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH))
    """Display name."""

    timezone: Mapped[str] = mapped_column(String(64))
    """IANA time zone identifier, e.g. 'Australia/Sydney'."""

    skills: Mapped[List[str]] = mapped_column(JSONType, default=list)
    """Ordered list of skill/treatment identifiers this provider can perform."""

    default_durations: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict)
    """Per-skill duration overrides in minutes: {skill_id: minutes}."""

    default_slot_minutes: Mapped[int] = mapped_column(default=DEFAULT_SLOT_MINUTES)
    """Step between generated bookable start times."""

    buffer_before_minutes: Mapped[int] = mapped_column(default=0)
    buffer_after_minutes: Mapped[int] = mapped_column(default=0)
    """Padding kept free around every existing booking."""

    is_active: Mapped[bool] = mapped_column(default=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    schedules = relationship("ProviderSchedule", back_populates="provider", cascade="all, delete-orphan")
    exceptions = relationship("ProviderException", back_populates="provider", cascade="all, delete-orphan")
    booking_assignments = relationship("BookingAssignment", back_populates="provider", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_providers_active_name', 'is_active', 'name'),
    )

    def has_skill(self, skill: str) -> bool:
        return skill in (self.skills or [])

    def duration_for(self, skill: Optional[str], fallback: int) -> int:
        """Duration in minutes for a skill, honouring per-provider overrides."""
        if skill and self.default_durations and skill in self.default_durations:
            return int(self.default_durations[skill])
        return fallback

    def __repr__(self) -> str:
        return f"<Provider(id={self.id}, name='{self.name}', tz={self.timezone})>"
