"""
Provider exception model representing unavailability periods.

Exceptions (PTO, sick leave, courses, public holidays, manual blocks) are
absolute UTC intervals that always take precedence over the weekly schedule.
Multiple and overlapping exceptions are allowed.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, TIMESTAMP, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import MAX_REASON_LENGTH
from core.database import Base


class ProviderException(Base):
    """
    A single time-off record with a kind discriminator.

    Only future or in-progress exceptions may be edited or deleted; that
    rule is enforced by ExceptionService.
    """

    __tablename__ = "provider_exceptions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    provider_id: Mapped[int] = mapped_column(ForeignKey("providers.id", ondelete="CASCADE"))

    kind: Mapped[str] = mapped_column(String(32))
    """
    Kind of exception. Valid values:
    - 'PTO', 'Sick', 'Course', 'PublicHoliday', 'Block'
    """

    start_utc: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    end_utc: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    reason: Mapped[Optional[str]] = mapped_column(String(MAX_REASON_LENGTH), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    chair: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    provider = relationship("Provider", back_populates="exceptions")

    __table_args__ = (
        CheckConstraint(
            "kind IN ('PTO', 'Sick', 'Course', 'PublicHoliday', 'Block')",
            name='check_valid_exception_kind'
        ),
        CheckConstraint('start_utc < end_utc', name='check_exception_time_range'),
        Index('idx_provider_exceptions_provider_start', 'provider_id', 'start_utc'),
    )

    def __repr__(self) -> str:
        return f"<ProviderException(id={self.id}, provider_id={self.provider_id}, kind={self.kind}, {self.start_utc}-{self.end_utc})>"
