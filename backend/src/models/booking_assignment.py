"""
Booking assignment model representing confirmed occupancy of provider time.

Rows are created at booking confirmation by the reservation guard, deleted on
cancellation and replaced on reschedule. start/end are a snapshot of the
appointment window for fast overlap queries.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, TIMESTAMP, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class BookingAssignment(Base):
    """Assignment of a provider to an appointment for a UTC interval."""

    __tablename__ = "booking_assignments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    provider_id: Mapped[int] = mapped_column(ForeignKey("providers.id", ondelete="CASCADE"))

    appointment_id: Mapped[str] = mapped_column(String(64))
    """Identifier of the appointment in the host application."""

    slot_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    """Identifier of the slot inside the appointment (multi-slot appointments)."""

    start_utc: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    end_utc: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    context: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    provider = relationship("Provider", back_populates="booking_assignments")

    __table_args__ = (
        CheckConstraint('start_utc < end_utc', name='check_assignment_time_range'),
        Index('idx_booking_assignments_provider_start', 'provider_id', 'start_utc'),
        Index('idx_booking_assignments_appointment', 'appointment_id', 'start_utc'),
    )

    @property
    def duration_minutes(self) -> int:
        return int((self.end_utc - self.start_utc).total_seconds() // 60)

    def __repr__(self) -> str:
        return f"<BookingAssignment(id={self.id}, provider_id={self.provider_id}, appointment={self.appointment_id}, {self.start_utc}-{self.end_utc})>"
