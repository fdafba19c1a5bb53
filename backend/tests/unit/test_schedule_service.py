"""
Unit tests for ScheduleService.
"""

import pytest
from datetime import time, timedelta

from core.exceptions import InvalidScheduleError, ProviderNotFoundError, ScheduleNotFoundError
from models import ProviderSchedule
from services.availability_service import AvailabilityService
from services.availability_store import SqlAlchemyAvailabilityStore
from services.schedule_service import ScheduleService, normalize_day_key
from tests.conftest import create_provider
from tests.fakes import utc


WEEKDAYS = {day: [{"start": "09:00", "end": "17:00"}] for day in ("mon", "tue", "wed", "thu", "fri")}


class TestParseDayBlocks:
    """Test validation of weekly schedule payloads."""

    def test_valid_payload(self):
        result = ScheduleService.parse_day_blocks({
            "Monday": [
                {"start": "14:00", "end": "18:00", "location": "South"},
                {"start": "09:00", "end": "12:00", "location": "North", "chair": "1"},
            ],
        })

        assert list(result) == ["mon"]
        assert [b.start for b in result["mon"]] == [time(9, 0), time(14, 0)]
        assert result["mon"][0].chair == "1"

    def test_end_of_day_is_allowed(self):
        result = ScheduleService.parse_day_blocks({"sun": [{"start": "18:00", "end": "24:00"}]})
        assert result["sun"][0].ends_next_day is True

    def test_touching_blocks_are_allowed(self):
        result = ScheduleService.parse_day_blocks({"mon": [
            {"start": "09:00", "end": "12:00"},
            {"start": "12:00", "end": "13:00"},
        ]})
        assert len(result["mon"]) == 2

    @pytest.mark.parametrize("blocks", [
        [{"start": "12:00", "end": "09:00"}],
        [{"start": "09:00", "end": "09:00"}],
        [{"start": "09:00", "end": "12:00"}, {"start": "11:00", "end": "13:00"}],
        [{"start": "08:00", "end": "24:00"}, {"start": "20:00", "end": "22:00"}],
        [{"start": "9am", "end": "12:00"}],
        [{"start": "24:00", "end": "24:00"}],
        [{"end": "12:00"}],
    ])
    def test_invalid_blocks_raise(self, blocks):
        with pytest.raises(InvalidScheduleError):
            ScheduleService.parse_day_blocks({"mon": blocks})

    def test_unknown_weekday_raises(self):
        with pytest.raises(InvalidScheduleError):
            normalize_day_key("someday")


class TestCreateScheduleVersion:
    """Test versioned schedule creation."""

    def test_first_version_has_open_start(self, db_session):
        provider = create_provider(db_session)

        schedule = ScheduleService.create_schedule_version(db_session, provider.id, WEEKDAYS)

        assert schedule.version == 1
        assert schedule.effective_from is None
        assert schedule.effective_to is None
        assert set(schedule.blocks) == {"mon", "tue", "wed", "thu", "fri"}

    def test_new_version_closes_previous(self, db_session):
        provider = create_provider(db_session)
        ScheduleService.create_schedule_version(db_session, provider.id, WEEKDAYS)
        switch = utc(2030, 1, 1)

        second = ScheduleService.create_schedule_version(
            db_session, provider.id, {"mon": [{"start": "10:00", "end": "14:00"}]}, effective_from=switch
        )

        assert second.version == 2
        assert second.effective_from == switch
        first = db_session.query(ProviderSchedule).filter(ProviderSchedule.version == 1).one()
        assert first.effective_to is not None

        before = ScheduleService.get_current_schedule(db_session, provider.id, as_of=switch - timedelta(minutes=1))
        after = ScheduleService.get_current_schedule(db_session, provider.id, as_of=switch)
        assert before.version == 1
        assert after.version == 2
        assert list(after.blocks) == ["mon"]

    def test_version_cannot_start_before_latest(self, db_session):
        provider = create_provider(db_session)
        ScheduleService.create_schedule_version(db_session, provider.id, WEEKDAYS)
        ScheduleService.create_schedule_version(db_session, provider.id, WEEKDAYS, effective_from=utc(2030, 1, 1))

        with pytest.raises(InvalidScheduleError):
            ScheduleService.create_schedule_version(db_session, provider.id, WEEKDAYS, effective_from=utc(2029, 6, 1))

    def test_later_version_cannot_start_in_the_past(self, db_session):
        provider = create_provider(db_session)
        ScheduleService.create_schedule_version(db_session, provider.id, {"mon": [{"start": "09:00", "end": "12:00"}]})
        store = SqlAlchemyAvailabilityStore(db_session)
        monday = (utc(2025, 3, 2, 13), utc(2025, 3, 3, 13))
        served = AvailabilityService.compute_availability(store, provider.id, *monday)

        with pytest.raises(InvalidScheduleError):
            ScheduleService.create_schedule_version(
                db_session, provider.id, {"tue": [{"start": "09:00", "end": "12:00"}]}, effective_from=utc(2025, 1, 1)
            )

        assert db_session.query(ProviderSchedule).count() == 1
        assert db_session.query(ProviderSchedule).one().effective_to is None
        assert AvailabilityService.compute_availability(store, provider.id, *monday) == served
        assert [(r.start_utc, r.end_utc) for r in served] == [(utc(2025, 3, 2, 22), utc(2025, 3, 3, 1))]

    def test_breaks_are_stored(self, db_session):
        provider = create_provider(db_session)

        schedule = ScheduleService.create_schedule_version(
            db_session, provider.id, WEEKDAYS, breaks={"mon": [{"start": "12:00", "end": "13:00"}]}
        )

        assert schedule.breaks["mon"][0].start == time(12, 0)
        assert "tue" not in schedule.breaks
        assert len(schedule.blocks["mon"]) == 1

    def test_invalid_payload_creates_nothing(self, db_session):
        provider = create_provider(db_session)

        with pytest.raises(InvalidScheduleError):
            ScheduleService.create_schedule_version(db_session, provider.id, {"mon": [{"start": "12:00", "end": "09:00"}]})

        assert db_session.query(ProviderSchedule).count() == 0

    def test_unknown_provider(self, db_session):
        with pytest.raises(ProviderNotFoundError):
            ScheduleService.create_schedule_version(db_session, 999, WEEKDAYS)


class TestGetCurrentSchedule:
    """Test schedule lookup and serialisation."""

    def test_no_schedule_raises(self, db_session):
        provider = create_provider(db_session)
        with pytest.raises(ScheduleNotFoundError):
            ScheduleService.get_current_schedule(db_session, provider.id)

    def test_schedule_to_dict(self, db_session):
        provider = create_provider(db_session)
        ScheduleService.create_schedule_version(db_session, provider.id, {"sun": [{"start": "18:00", "end": "24:00"}]})

        payload = ScheduleService.schedule_to_dict(ScheduleService.get_current_schedule(db_session, provider.id))

        assert list(payload["days"]) == ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
        assert payload["days"]["sun"] == [{"start": "18:00", "end": "24:00", "location": None, "chair": None}]
        assert payload["days"]["mon"] == []
        assert payload["version"] == 1
        assert payload["effective_from"] is None
