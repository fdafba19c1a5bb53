"""
Test configuration and shared fixtures for the availability engine test suite.

Uses an in-memory SQLite database per test (override with TEST_DATABASE_URL).
Each test gets a fresh schema, so application code is free to commit.
"""

import os

# Point the application engine at SQLite before core.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, time
from typing import Dict, Generator, List, Optional

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base, get_db
# Import all models to ensure they're registered with SQLAlchemy before any relationships are resolved
from models import BookingAssignment, Provider, ProviderException, ProviderSchedule, ScheduleBlock


# Test database URL
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")


@pytest.fixture(scope="function")
def db_engine():
    """
    Create a database engine for one test.

    In-memory SQLite needs a StaticPool so every session sees the same
    database, and check_same_thread=False so the TestClient's worker
    threads can use it.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL, echo=False)

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session bound to the per-test engine."""
    TestingSession = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = TestingSession()

    yield session

    session.close()


@pytest.fixture
def client(db_session) -> Generator[TestClient, None, None]:
    """TestClient whose get_db dependency yields the test session."""
    from main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


# Helper functions for creating providers and schedules
def create_provider(
    db_session: Session,
    name: str = "Dr. A",
    timezone_name: str = "Australia/Sydney",
    skills: Optional[List[str]] = None,
    is_active: bool = True,
    buffer_before_minutes: int = 0,
    buffer_after_minutes: int = 0,
) -> Provider:
    """Create and commit a provider row."""
    provider = Provider(
        name=name,
        timezone=timezone_name,
        skills=skills if skills is not None else ["physio"],
        is_active=is_active,
        default_slot_minutes=10,
        buffer_before_minutes=buffer_before_minutes,
        buffer_after_minutes=buffer_after_minutes,
        default_durations={},
    )
    db_session.add(provider)
    db_session.commit()
    return provider


def create_schedule(
    db_session: Session,
    provider: Provider,
    days: Dict[int, List[tuple]],
    version: int = 1,
    effective_from: Optional[datetime] = None,
    effective_to: Optional[datetime] = None,
) -> ProviderSchedule:
    """
    Create a schedule version from {day_of_week: [(start, end), ...]}.

    Times are datetime.time values in the provider's zone.
    """
    schedule = ProviderSchedule(
        provider_id=provider.id,
        version=version,
        effective_from=effective_from,
        effective_to=effective_to,
    )
    for day_of_week, blocks in days.items():
        for start, end in blocks:
            schedule.blocks.append(ScheduleBlock(
                day_of_week=day_of_week,
                start_time=start,
                end_time=end,
                ends_next_day=False,
                is_break=False,
            ))
    db_session.add(schedule)
    db_session.commit()
    return schedule


def create_exception(
    db_session: Session,
    provider: Provider,
    start_utc: datetime,
    end_utc: datetime,
    kind: str = "PTO",
) -> ProviderException:
    exception = ProviderException(
        provider_id=provider.id,
        kind=kind,
        start_utc=start_utc,
        end_utc=end_utc,
    )
    db_session.add(exception)
    db_session.commit()
    return exception


def create_assignment(
    db_session: Session,
    provider: Provider,
    start_utc: datetime,
    end_utc: datetime,
    appointment_id: str = "appt-1",
) -> BookingAssignment:
    assignment = BookingAssignment(
        provider_id=provider.id,
        appointment_id=appointment_id,
        start_utc=start_utc,
        end_utc=end_utc,
        context="booking",
    )
    db_session.add(assignment)
    db_session.commit()
    return assignment


@pytest.fixture
def monday_morning():
    """Monday 09:00-12:00 local."""
    return {0: [(time(9, 0), time(12, 0))]}
