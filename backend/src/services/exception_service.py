"""
Exception service for provider time off and manual blocks.

Exceptions are absolute UTC intervals. Once an exception has ended it is
part of the provider's history and can no longer be edited or deleted.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core.exceptions import ExceptionNotFoundError, ImmutableExceptionError, InvalidRangeError
from models import ProviderException
from services.provider_service import ProviderService
from shared_types.availability import ExceptionKind
from utils.datetime_utils import ensure_utc, require_utc, utc_now

logger = logging.getLogger(__name__)


def parse_exception_kind(kind: Any) -> ExceptionKind:
    """Accept an ExceptionKind or its string value."""
    if isinstance(kind, ExceptionKind):
        return kind
    try:
        return ExceptionKind(kind)
    except ValueError:
        valid = ", ".join(k.value for k in ExceptionKind)
        raise ValueError(f"Unknown exception kind '{kind}' (expected one of: {valid})")


class ExceptionService:
    """Service class for exception (time off) operations."""

    @staticmethod
    def _validate_interval(start_utc: datetime, end_utc: datetime) -> None:
        if start_utc >= end_utc:
            raise InvalidRangeError("Exception start must be before its end")

    @staticmethod
    def _get_exception(db: Session, provider_id: int, exception_id: int) -> ProviderException:
        exception = db.query(ProviderException).filter(
            ProviderException.id == exception_id,
            ProviderException.provider_id == provider_id,
        ).first()
        if not exception:
            raise ExceptionNotFoundError(f"Exception {exception_id} not found for provider {provider_id}")
        return exception

    @staticmethod
    def _ensure_mutable(exception: ProviderException, now: Optional[datetime] = None) -> None:
        """Only future or in-progress exceptions may change."""
        now = now or utc_now()
        if require_utc(exception.end_utc) <= now:
            raise ImmutableExceptionError(
                f"Exception {exception.id} ended at {require_utc(exception.end_utc).isoformat()} and cannot be changed"
            )

    @staticmethod
    def create_exception(
        db: Session,
        provider_id: int,
        kind: Any,
        start_utc: datetime,
        end_utc: datetime,
        reason: Optional[str] = None,
        location: Optional[str] = None,
        chair: Optional[str] = None,
    ) -> ProviderException:
        """
        Record time off for a provider.

        Overlapping exceptions are allowed; they are unioned at query time.

        Raises:
            ProviderNotFoundError: If the provider does not exist
            InvalidRangeError: If start_utc >= end_utc
            ValueError: If the kind is unknown
        """
        ProviderService.get_provider(db, provider_id)
        exception_kind = parse_exception_kind(kind)
        start_utc, end_utc = require_utc(start_utc), require_utc(end_utc)
        ExceptionService._validate_interval(start_utc, end_utc)

        exception = ProviderException(
            provider_id=provider_id,
            kind=exception_kind.value,
            start_utc=start_utc,
            end_utc=end_utc,
            reason=reason,
            location=location,
            chair=chair,
        )
        db.add(exception)
        db.commit()
        db.refresh(exception)

        logger.info(
            f"Created {exception_kind.value} exception {exception.id} for provider {provider_id}: "
            f"{start_utc.isoformat()} - {end_utc.isoformat()}"
        )
        return exception

    @staticmethod
    def list_exceptions(
        db: Session,
        provider_id: int,
        from_utc: Optional[datetime] = None,
        to_utc: Optional[datetime] = None,
        kind: Optional[Any] = None,
    ) -> List[ProviderException]:
        """List exceptions overlapping an optional [from_utc, to_utc) range."""
        ProviderService.get_provider(db, provider_id)
        query = db.query(ProviderException).filter(ProviderException.provider_id == provider_id)
        if from_utc is not None:
            query = query.filter(ProviderException.end_utc > require_utc(from_utc))
        if to_utc is not None:
            query = query.filter(ProviderException.start_utc < require_utc(to_utc))
        if kind is not None:
            query = query.filter(ProviderException.kind == parse_exception_kind(kind).value)
        return query.order_by(ProviderException.start_utc).all()

    @staticmethod
    def update_exception(
        db: Session,
        provider_id: int,
        exception_id: int,
        kind: Optional[Any] = None,
        start_utc: Optional[datetime] = None,
        end_utc: Optional[datetime] = None,
        reason: Optional[str] = None,
        location: Optional[str] = None,
        chair: Optional[str] = None,
    ) -> ProviderException:
        """
        Update a future or in-progress exception.

        Only the future part may change: an exception that has started keeps
        its start, and neither bound may be moved before the current time.

        Raises:
            ExceptionNotFoundError: If the exception does not exist for the provider
            ImmutableExceptionError: If the exception has already ended, or if
                the start of an in-progress exception would move
            InvalidRangeError: If the resulting interval is empty or a moved
                bound lies in the past
        """
        now = utc_now()
        exception = ExceptionService._get_exception(db, provider_id, exception_id)
        ExceptionService._ensure_mutable(exception, now)

        old_start = require_utc(exception.start_utc)
        new_start = require_utc(start_utc) if start_utc is not None else old_start
        new_end = require_utc(end_utc) if end_utc is not None else require_utc(exception.end_utc)
        ExceptionService._validate_interval(new_start, new_end)

        if new_start != old_start:
            if old_start <= now:
                raise ImmutableExceptionError(
                    f"Exception {exception_id} started at {old_start.isoformat()}; its start cannot be changed"
                )
            if new_start < now:
                raise InvalidRangeError(f"Exception cannot be moved to start in the past ({new_start.isoformat()})")
        if end_utc is not None and new_end < now:
            raise InvalidRangeError(f"Exception cannot be set to end in the past ({new_end.isoformat()})")

        if kind is not None:
            exception.kind = parse_exception_kind(kind).value
        exception.start_utc = new_start
        exception.end_utc = new_end
        if reason is not None:
            exception.reason = reason
        if location is not None:
            exception.location = location
        if chair is not None:
            exception.chair = chair

        db.commit()
        db.refresh(exception)
        logger.info(f"Updated exception {exception_id} for provider {provider_id}")
        return exception

    @staticmethod
    def delete_exception(db: Session, provider_id: int, exception_id: int) -> None:
        """
        Delete a future or in-progress exception.

        Raises:
            ExceptionNotFoundError: If the exception does not exist for the provider
            ImmutableExceptionError: If the exception has already ended
        """
        exception = ExceptionService._get_exception(db, provider_id, exception_id)
        ExceptionService._ensure_mutable(exception)
        db.delete(exception)
        db.commit()
        logger.info(f"Deleted exception {exception_id} for provider {provider_id}")

    # ===== Manual blocks =====

    @staticmethod
    def create_block(
        db: Session,
        provider_id: int,
        start_utc: datetime,
        end_utc: datetime,
        reason: Optional[str] = None,
        location: Optional[str] = None,
        chair: Optional[str] = None,
    ) -> ProviderException:
        return ExceptionService.create_exception(
            db, provider_id, ExceptionKind.BLOCK, start_utc, end_utc,
            reason=reason, location=location, chair=chair,
        )

    @staticmethod
    def list_blocks(
        db: Session,
        provider_id: int,
        from_utc: Optional[datetime] = None,
        to_utc: Optional[datetime] = None,
    ) -> List[ProviderException]:
        return ExceptionService.list_exceptions(db, provider_id, from_utc, to_utc, kind=ExceptionKind.BLOCK)

    @staticmethod
    def delete_block(db: Session, provider_id: int, block_id: int) -> None:
        """
        Delete a manual block. Other exception kinds are not reachable here.

        Raises:
            ExceptionNotFoundError: If no Block with this id exists for the provider
            ImmutableExceptionError: If the block has already ended
        """
        exception = ExceptionService._get_exception(db, provider_id, block_id)
        if exception.kind != ExceptionKind.BLOCK.value:
            raise ExceptionNotFoundError(f"Block {block_id} not found for provider {provider_id}")
        ExceptionService.delete_exception(db, provider_id, block_id)

    @staticmethod
    def exception_to_dict(exception: ProviderException) -> Dict[str, Any]:
        return {
            "id": exception.id,
            "provider_id": exception.provider_id,
            "kind": exception.kind,
            "start_utc": require_utc(exception.start_utc).isoformat(),
            "end_utc": require_utc(exception.end_utc).isoformat(),
            "reason": exception.reason,
            "location": exception.location,
            "chair": exception.chair,
            "created_at": ensure_utc(exception.created_at).isoformat() if exception.created_at else None,
        }
