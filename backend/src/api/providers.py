# pyright: reportMissingTypeStubs=false
"""
Provider availability API endpoints.

Providers, weekly schedule versions, exceptions and manual blocks, the
availability read path (ranges, classification, bookable slots, suggestions)
and the booking write path. Domain errors are mapped to HTTP status codes by
the exception handlers registered in main.py.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from api.responses import (
    AvailabilityResponse, BookableSlotResponse, BookableSlotsResponse, BookingAssignmentListResponse,
    BookingAssignmentResponse,
    ClassificationResponse, ExceptionListResponse, ExceptionResponse, ProviderListResponse,
    ProviderResponse, ScheduleResponse, SlotRangeResponse, SuggestionListResponse, SuggestionResponse
)
from core.constants import DEFAULT_SLOT_MINUTES, MAX_REASON_LENGTH, MAX_STRING_LENGTH
from core.database import get_db
from core.exceptions import AvailabilityError
from services import (
    AvailabilityService, BookingReservationGuard, ExceptionService, ProviderService,
    ProviderSuggester, ScheduleService, SqlAlchemyAvailabilityStore
)
from shared_types.availability import BookedInterval
from utils.datetime_utils import minutes_between, parse_time_of_day

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request Models =====

class ProviderCreateRequest(BaseModel):
    """Request model for creating a provider."""
    name: str
    timezone: Optional[str] = None
    skills: List[str] = []
    default_slot_minutes: int = DEFAULT_SLOT_MINUTES
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    default_durations: Dict[str, int] = {}
    is_active: bool = True

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Name cannot be empty')
        if len(v) > MAX_STRING_LENGTH:
            raise ValueError(f'Name cannot exceed {MAX_STRING_LENGTH} characters')
        return v

    @field_validator('default_slot_minutes')
    @classmethod
    def validate_slot_minutes(cls, v: int) -> int:
        if v <= 0:
            raise ValueError('Slot minutes must be positive')
        return v

    @field_validator('buffer_before_minutes', 'buffer_after_minutes')
    @classmethod
    def validate_buffers(cls, v: int) -> int:
        if v < 0:
            raise ValueError('Buffers cannot be negative')
        return v

    @field_validator('default_durations')
    @classmethod
    def validate_durations(cls, v: Dict[str, int]) -> Dict[str, int]:
        for skill, minutes in v.items():
            if minutes <= 0:
                raise ValueError(f'Duration for {skill} must be positive')
        return v


class ProviderUpdateRequest(BaseModel):
    """Request model for updating a provider. Omitted fields are unchanged."""
    name: Optional[str] = None
    timezone: Optional[str] = None
    skills: Optional[List[str]] = None
    default_slot_minutes: Optional[int] = None
    buffer_before_minutes: Optional[int] = None
    buffer_after_minutes: Optional[int] = None
    default_durations: Optional[Dict[str, int]] = None
    is_active: Optional[bool] = None


class TimeBlock(BaseModel):
    """Local-time block of a weekly schedule."""
    start: str  # Format: "HH:MM"
    end: str    # Format: "HH:MM", "24:00" allowed
    location: Optional[str] = None
    chair: Optional[str] = None

    @field_validator('start', 'end')
    @classmethod
    def validate_time(cls, v: str) -> str:
        parse_time_of_day(v)
        return v


class ScheduleCreateRequest(BaseModel):
    """Request model for saving a new weekly schedule version."""
    days: Dict[str, List[TimeBlock]]  # keys: "mon".."sun" (full names accepted)
    breaks: Dict[str, List[TimeBlock]] = {}
    effective_from: Optional[datetime] = None


class ExceptionCreateRequest(BaseModel):
    """Request model for recording time off."""
    kind: str  # PTO, Sick, Course, PublicHoliday, Block
    start_utc: datetime
    end_utc: datetime
    reason: Optional[str] = None
    location: Optional[str] = None
    chair: Optional[str] = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > MAX_REASON_LENGTH:
            raise ValueError(f'Reason cannot exceed {MAX_REASON_LENGTH} characters')
        return v


class ExceptionUpdateRequest(BaseModel):
    """Request model for editing a future or in-progress exception."""
    kind: Optional[str] = None
    start_utc: Optional[datetime] = None
    end_utc: Optional[datetime] = None
    reason: Optional[str] = None
    location: Optional[str] = None
    chair: Optional[str] = None


class BlockCreateRequest(BaseModel):
    """Request model for a manual block."""
    start_utc: datetime
    end_utc: datetime
    reason: Optional[str] = None
    location: Optional[str] = None
    chair: Optional[str] = None


class BookingCreateRequest(BaseModel):
    """Request model for reserving provider time."""
    start_utc: datetime
    end_utc: datetime
    appointment_id: str
    slot_id: Optional[str] = None
    context: Optional[str] = None

    @field_validator('appointment_id')
    @classmethod
    def validate_appointment_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Appointment ID cannot be empty')
        return v.strip()


class BookingRescheduleRequest(BaseModel):
    """Request model for moving a booking to a new interval."""
    start_utc: datetime
    end_utc: datetime


# ===== Helpers =====

def _provider_response(provider) -> ProviderResponse:
    return ProviderResponse(**ProviderService.provider_to_dict(provider))


def _exception_response(exception) -> ExceptionResponse:
    return ExceptionResponse(**ExceptionService.exception_to_dict(exception))


def _assignment_response(assignment: BookedInterval) -> BookingAssignmentResponse:
    return BookingAssignmentResponse(
        id=assignment.id,
        provider_id=assignment.provider_id,
        appointment_id=assignment.appointment_id,
        slot_id=assignment.slot_id,
        start_utc=assignment.start_utc,
        end_utc=assignment.end_utc,
        context=assignment.context,
    )


def _internal_error(action: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}"
    )


# ===== Suggestions =====
# Declared before /{provider_id} so "suggest" is not parsed as an id.

@router.get("/suggest", summary="Suggest providers for a skill and window", response_model=SuggestionListResponse)
async def suggest_providers(
    skill: str = Query(..., description="Skill/treatment identifier"),
    from_utc: datetime = Query(..., description="Window start (UTC ISO-8601)"),
    to_utc: datetime = Query(..., description="Window end (UTC ISO-8601)"),
    duration_min: Optional[int] = Query(None, description="Appointment length in minutes"),
    only_fits: bool = Query(False),
    allow_partial: bool = Query(True),
    include_unavailable: bool = Query(False),
    db: Session = Depends(get_db),
) -> SuggestionListResponse:
    """Rank active providers with the skill by how well the window fits them."""
    try:
        suggestions = ProviderSuggester.suggest_providers(
            SqlAlchemyAvailabilityStore(db),
            skill=skill,
            from_utc=from_utc,
            to_utc=to_utc,
            duration_min=duration_min,
            only_fits=only_fits,
            allow_partial=allow_partial,
            include_unavailable=include_unavailable,
        )
        return SuggestionListResponse(
            suggestions=[SuggestionResponse(**s.to_dict()) for s in suggestions]
        )
    except (AvailabilityError, ValueError):
        raise
    except Exception as e:
        logger.exception(f"Failed to suggest providers for skill {skill}: {e}")
        raise _internal_error("suggest providers")


# ===== Providers =====

@router.post("/", summary="Create provider", response_model=ProviderResponse, status_code=status.HTTP_201_CREATED)
async def create_provider(
    request: ProviderCreateRequest,
    db: Session = Depends(get_db),
) -> ProviderResponse:
    try:
        provider = ProviderService.create_provider(db, **request.model_dump())
        return _provider_response(provider)
    except (AvailabilityError, ValueError):
        raise
    except Exception as e:
        logger.exception(f"Failed to create provider: {e}")
        raise _internal_error("create provider")


@router.get("/", summary="List providers", response_model=ProviderListResponse)
async def list_providers(
    skill: Optional[str] = Query(None, description="Only providers with this skill"),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
) -> ProviderListResponse:
    try:
        providers = ProviderService.list_providers(db, skill=skill, include_inactive=include_inactive)
        return ProviderListResponse(providers=[_provider_response(p) for p in providers])
    except Exception as e:
        logger.exception(f"Failed to list providers: {e}")
        raise _internal_error("list providers")


@router.get("/{provider_id}", summary="Get provider", response_model=ProviderResponse)
async def get_provider(provider_id: int, db: Session = Depends(get_db)) -> ProviderResponse:
    try:
        return _provider_response(ProviderService.get_provider(db, provider_id))
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to get provider {provider_id}: {e}")
        raise _internal_error("get provider")


@router.put("/{provider_id}", summary="Update provider", response_model=ProviderResponse)
async def update_provider(
    provider_id: int,
    request: ProviderUpdateRequest,
    db: Session = Depends(get_db),
) -> ProviderResponse:
    try:
        provider = ProviderService.update_provider(db, provider_id, **request.model_dump())
        return _provider_response(provider)
    except (AvailabilityError, ValueError):
        raise
    except Exception as e:
        logger.exception(f"Failed to update provider {provider_id}: {e}")
        raise _internal_error("update provider")


# ===== Schedules =====

@router.post(
    "/{provider_id}/schedules",
    summary="Save a new weekly schedule version",
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_schedule(
    provider_id: int,
    request: ScheduleCreateRequest,
    db: Session = Depends(get_db),
) -> ScheduleResponse:
    try:
        schedule = ScheduleService.create_schedule_version(
            db,
            provider_id,
            days={day: [b.model_dump() for b in blocks] for day, blocks in request.days.items()},
            breaks={day: [b.model_dump() for b in blocks] for day, blocks in request.breaks.items()},
            effective_from=request.effective_from,
        )
        return ScheduleResponse(**ScheduleService.schedule_to_dict(schedule))
    except (AvailabilityError, ValueError):
        raise
    except Exception as e:
        logger.exception(f"Failed to save schedule for provider {provider_id}: {e}")
        raise _internal_error("save schedule")


@router.get("/{provider_id}/schedules/current", summary="Get the schedule in force", response_model=ScheduleResponse)
async def get_current_schedule(
    provider_id: int,
    as_of: Optional[datetime] = Query(None, description="Instant to resolve the version at (default: now)"),
    db: Session = Depends(get_db),
) -> ScheduleResponse:
    try:
        schedule = ScheduleService.get_current_schedule(db, provider_id, as_of)
        return ScheduleResponse(**ScheduleService.schedule_to_dict(schedule))
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to get schedule for provider {provider_id}: {e}")
        raise _internal_error("get schedule")


# ===== Exceptions =====

@router.get("/{provider_id}/exceptions", summary="List exceptions", response_model=ExceptionListResponse)
async def list_exceptions(
    provider_id: int,
    from_utc: Optional[datetime] = Query(None),
    to_utc: Optional[datetime] = Query(None),
    kind: Optional[str] = Query(None),
    db: Session = Depends(get_db),
) -> ExceptionListResponse:
    try:
        exceptions = ExceptionService.list_exceptions(db, provider_id, from_utc, to_utc, kind=kind)
        return ExceptionListResponse(exceptions=[_exception_response(e) for e in exceptions])
    except (AvailabilityError, ValueError):
        raise
    except Exception as e:
        logger.exception(f"Failed to list exceptions for provider {provider_id}: {e}")
        raise _internal_error("list exceptions")


@router.post(
    "/{provider_id}/exceptions",
    summary="Record time off",
    response_model=ExceptionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_exception(
    provider_id: int,
    request: ExceptionCreateRequest,
    db: Session = Depends(get_db),
) -> ExceptionResponse:
    try:
        exception = ExceptionService.create_exception(db, provider_id, **request.model_dump())
        return _exception_response(exception)
    except (AvailabilityError, ValueError):
        raise
    except Exception as e:
        logger.exception(f"Failed to create exception for provider {provider_id}: {e}")
        raise _internal_error("create exception")


@router.put("/{provider_id}/exceptions/{exception_id}", summary="Edit time off", response_model=ExceptionResponse)
async def update_exception(
    provider_id: int,
    exception_id: int,
    request: ExceptionUpdateRequest,
    db: Session = Depends(get_db),
) -> ExceptionResponse:
    try:
        exception = ExceptionService.update_exception(db, provider_id, exception_id, **request.model_dump())
        return _exception_response(exception)
    except (AvailabilityError, ValueError):
        raise
    except Exception as e:
        logger.exception(f"Failed to update exception {exception_id}: {e}")
        raise _internal_error("update exception")


@router.delete(
    "/{provider_id}/exceptions/{exception_id}",
    summary="Delete time off",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_exception(provider_id: int, exception_id: int, db: Session = Depends(get_db)) -> None:
    try:
        ExceptionService.delete_exception(db, provider_id, exception_id)
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to delete exception {exception_id}: {e}")
        raise _internal_error("delete exception")


# ===== Manual blocks =====

@router.post(
    "/{provider_id}/blocks",
    summary="Block time",
    response_model=ExceptionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_block(
    provider_id: int,
    request: BlockCreateRequest,
    db: Session = Depends(get_db),
) -> ExceptionResponse:
    try:
        block = ExceptionService.create_block(db, provider_id, **request.model_dump())
        return _exception_response(block)
    except (AvailabilityError, ValueError):
        raise
    except Exception as e:
        logger.exception(f"Failed to create block for provider {provider_id}: {e}")
        raise _internal_error("create block")


@router.get("/{provider_id}/blocks", summary="List manual blocks", response_model=ExceptionListResponse)
async def list_blocks(
    provider_id: int,
    from_utc: Optional[datetime] = Query(None),
    to_utc: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
) -> ExceptionListResponse:
    try:
        blocks = ExceptionService.list_blocks(db, provider_id, from_utc, to_utc)
        return ExceptionListResponse(exceptions=[_exception_response(b) for b in blocks])
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to list blocks for provider {provider_id}: {e}")
        raise _internal_error("list blocks")


@router.delete("/{provider_id}/blocks/{block_id}", summary="Remove a manual block", status_code=status.HTTP_204_NO_CONTENT)
async def delete_block(provider_id: int, block_id: int, db: Session = Depends(get_db)) -> None:
    try:
        ExceptionService.delete_block(db, provider_id, block_id)
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to delete block {block_id}: {e}")
        raise _internal_error("delete block")


# ===== Availability =====

@router.get("/{provider_id}/availability", summary="Free ranges over a period", response_model=AvailabilityResponse)
async def get_availability(
    provider_id: int,
    from_utc: datetime = Query(...),
    to_utc: datetime = Query(...),
    grouping: Optional[bool] = Query(None, description="Only merge slots sharing location|chair|day"),
    tolerance_ms: Optional[int] = Query(None, description="Largest gap bridged when merging"),
    db: Session = Depends(get_db),
) -> AvailabilityResponse:
    try:
        ranges = AvailabilityService.compute_availability(
            SqlAlchemyAvailabilityStore(db),
            provider_id,
            from_utc,
            to_utc,
            grouping=grouping,
            tolerance_ms=tolerance_ms,
        )
        return AvailabilityResponse(
            provider_id=provider_id,
            from_utc=from_utc,
            to_utc=to_utc,
            ranges=[SlotRangeResponse(**r.to_dict()) for r in ranges],
        )
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to compute availability for provider {provider_id}: {e}")
        raise _internal_error("compute availability")


@router.get(
    "/{provider_id}/availability/classify",
    summary="Classify a candidate window",
    response_model=ClassificationResponse,
)
async def classify_window(
    provider_id: int,
    from_utc: datetime = Query(...),
    to_utc: datetime = Query(...),
    candidate_from: datetime = Query(...),
    candidate_to: datetime = Query(...),
    db: Session = Depends(get_db),
) -> ClassificationResponse:
    try:
        classification = AvailabilityService.classify_window(
            SqlAlchemyAvailabilityStore(db), provider_id, from_utc, to_utc, candidate_from, candidate_to
        )
        return ClassificationResponse(
            provider_id=provider_id,
            candidate_from=candidate_from,
            candidate_to=candidate_to,
            classification=classification.value,
        )
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to classify window for provider {provider_id}: {e}")
        raise _internal_error("classify window")


@router.get(
    "/{provider_id}/availability/slots",
    summary="Bookable start times",
    response_model=BookableSlotsResponse,
)
async def get_bookable_slots(
    provider_id: int,
    from_utc: datetime = Query(...),
    to_utc: datetime = Query(...),
    duration_minutes: Optional[int] = Query(None),
    skill: Optional[str] = Query(None, description="Use the provider's duration for this skill"),
    db: Session = Depends(get_db),
) -> BookableSlotsResponse:
    try:
        store = SqlAlchemyAvailabilityStore(db)
        slots = AvailabilityService.compute_bookable_slots(
            store, provider_id, from_utc, to_utc, duration_minutes=duration_minutes, skill=skill
        )
        length = int(minutes_between(slots[0].start_utc, slots[0].end_utc)) if slots else (duration_minutes or 0)
        return BookableSlotsResponse(
            provider_id=provider_id,
            duration_minutes=length,
            slots=[
                BookableSlotResponse(
                    start_utc=s.start_utc,
                    end_utc=s.end_utc,
                    local_label=s.local_label,
                    location=s.meta.location,
                    chair=s.meta.chair,
                )
                for s in slots
            ],
        )
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to generate slots for provider {provider_id}: {e}")
        raise _internal_error("generate slots")


# ===== Bookings =====
# Write routes are plain def: they wait on provider locks, so they run in the threadpool

@router.get(
    "/{provider_id}/bookings",
    summary="List booked time over a period",
    response_model=BookingAssignmentListResponse,
)
async def list_bookings(
    provider_id: int,
    from_utc: datetime = Query(...),
    to_utc: datetime = Query(...),
    db: Session = Depends(get_db),
) -> BookingAssignmentListResponse:
    try:
        bookings = AvailabilityService.list_bookings(SqlAlchemyAvailabilityStore(db), provider_id, from_utc, to_utc)
        return BookingAssignmentListResponse(
            provider_id=provider_id,
            from_utc=from_utc,
            to_utc=to_utc,
            bookings=[_assignment_response(b) for b in bookings],
        )
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to list bookings for provider {provider_id}: {e}")
        raise _internal_error("list bookings")


@router.post(
    "/{provider_id}/bookings",
    summary="Reserve provider time",
    response_model=BookingAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def reserve_booking(
    provider_id: int,
    request: BookingCreateRequest,
    db: Session = Depends(get_db),
) -> BookingAssignmentResponse:
    try:
        assignment = BookingReservationGuard.reserve_booking(
            SqlAlchemyAvailabilityStore(db),
            provider_id,
            request.start_utc,
            request.end_utc,
            appointment_id=request.appointment_id,
            slot_id=request.slot_id,
            context=request.context,
        )
        return _assignment_response(assignment)
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to reserve booking for provider {provider_id}: {e}")
        raise _internal_error("reserve booking")


@router.put(
    "/{provider_id}/bookings/{assignment_id}",
    summary="Reschedule a booking",
    response_model=BookingAssignmentResponse,
)
def reschedule_booking(
    provider_id: int,
    assignment_id: int,
    request: BookingRescheduleRequest,
    db: Session = Depends(get_db),
) -> BookingAssignmentResponse:
    try:
        assignment = BookingReservationGuard.reschedule_booking(
            SqlAlchemyAvailabilityStore(db), provider_id, assignment_id, request.start_utc, request.end_utc
        )
        return _assignment_response(assignment)
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to reschedule booking {assignment_id}: {e}")
        raise _internal_error("reschedule booking")


@router.delete(
    "/{provider_id}/bookings/{assignment_id}",
    summary="Cancel a booking",
    status_code=status.HTTP_204_NO_CONTENT,
)
def cancel_booking(provider_id: int, assignment_id: int, db: Session = Depends(get_db)) -> None:
    try:
        BookingReservationGuard.cancel_booking(SqlAlchemyAvailabilityStore(db), provider_id, assignment_id)
    except AvailabilityError:
        raise
    except Exception as e:
        logger.exception(f"Failed to cancel booking {assignment_id}: {e}")
        raise _internal_error("cancel booking")
