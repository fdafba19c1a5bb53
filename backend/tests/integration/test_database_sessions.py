"""
Integration tests for the session dependency and timestamps in core.database.
"""

import pytest
from sqlalchemy.orm import sessionmaker

import core.database as database
from core.exceptions import ProviderNotFoundError
from models import Provider


@pytest.fixture
def session_factory(db_engine, monkeypatch):
    """Bind the module's SessionLocal to the per-test engine."""
    factory = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    monkeypatch.setattr(database, "SessionLocal", factory)
    return factory


def provider_names(factory):
    with factory() as db:
        return [p.name for p in db.query(Provider).order_by(Provider.id).all()]


class TestGetDb:
    """Test the request-scoped dependency."""

    def test_yields_session_and_rolls_back_on_domain_error(self, session_factory):
        gen = database.get_db()
        db = next(gen)
        db.add(Provider(name="Dr. D", timezone="Australia/Sydney", skills=[]))
        db.flush()

        with pytest.raises(ProviderNotFoundError):
            gen.throw(ProviderNotFoundError("Provider 99 not found"))

        assert provider_names(session_factory) == []


class TestTimestamps:
    """created_at and updated_at are filled in UTC."""

    def test_insert_sets_both_timestamps(self, db_session):
        provider = Provider(name="Dr. E", timezone="Australia/Sydney", skills=[])
        db_session.add(provider)
        db_session.commit()

        assert provider.created_at is not None
        assert provider.updated_at == provider.created_at
