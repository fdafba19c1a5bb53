# pyright: reportMissingTypeStubs=false
"""
Database engine, declarative base and session helpers.

The schema itself is owned by Alembic (backend/alembic); tests build it with
Base.metadata.create_all on their own engine.
"""

import logging
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL
from core.constants import DB_POOL_RECYCLE_SECONDS
from core.exceptions import AvailabilityError

logger = logging.getLogger(__name__)

TIMESTAMP_COLUMNS = ("created_at", "updated_at")


def _engine_kwargs(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_recycle": DB_POOL_RECYCLE_SECONDS,
    }


engine = create_engine(DATABASE_URL, echo=False, **_engine_kwargs(DATABASE_URL))

# Objects stay usable after commit; services convert rows to dicts afterwards
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for providers, schedules, exceptions and bookings."""


@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def stamp_created(mapper, connection, target):  # type: ignore
    """Fill created_at/updated_at with the current UTC time when unset."""
    from utils.datetime_utils import utc_now
    now = utc_now()
    for column_name in TIMESTAMP_COLUMNS:
        if column_name in mapper.columns and getattr(target, column_name, None) is None:  # type: ignore
            setattr(target, column_name, now)  # type: ignore


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def stamp_updated(mapper, connection, target):  # type: ignore
    from utils.datetime_utils import utc_now
    if "updated_at" in mapper.columns:  # type: ignore
        setattr(target, "updated_at", utc_now())  # type: ignore


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding one session per request.

    Domain errors (conflicts, missing providers, bad ranges) roll back quietly;
    they are mapped to HTTP responses by the handlers in main.py. Anything
    else is logged before it propagates.
    """
    db = SessionLocal()
    try:
        yield db
    except AvailabilityError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        logger.exception(f"Database error: {e}")
        db.rollback()
        raise
    finally:
        db.close()

