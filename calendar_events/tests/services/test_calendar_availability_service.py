import datetime
import logging

import pytest

from calendar_events.constants import ParticipationType
from calendar_events.factories import ExternalCalendarFactory
from calendar_events.services.calendar_availability_service import CalendarAvailabilityService
from calendar_events.services.dataclasses import FindSlotsInputData
from users.factories import UserFactory
from users.services import UNKNOWN_USER_DISPLAY_NAME


def _dt(year, month, day, hour=9, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


def _bounds(slots):
    return [(slot.start_time, slot.end_time) for slot in slots]


@pytest.fixture
def service():
    return CalendarAvailabilityService(max_workers=2)


@pytest.fixture
def parent():
    return UserFactory().create_user(first_name="Ana", last_name="Silva")


@pytest.fixture
def kid():
    return UserFactory().create_user(first_name="Leo", last_name="Silva")


@pytest.mark.django_db
class TestCalendarAvailabilityServiceBusySlots:
    def test_recurring_and_single_events_are_busy(self, service, event_factory, parent):
        event_factory.create_recurring_event(
            _dt(2024, 6, 3), _dt(2024, 6, 3, 9, 15), "FREQ=DAILY", members=[parent]
        )
        event_factory.create_event(_dt(2024, 6, 3, 9, 10), _dt(2024, 6, 3, 10), members=[parent])

        busy_slots = service.get_busy_slots(parent.id, _dt(2024, 6, 3, 0), _dt(2024, 6, 5, 0))

        assert _bounds(busy_slots) == [
            (_dt(2024, 6, 3, 9), _dt(2024, 6, 3, 10)),
            (_dt(2024, 6, 4, 9), _dt(2024, 6, 4, 9, 15)),
        ]

    def test_aware_members_are_not_busy(self, service, event_factory, parent, kid):
        event = event_factory.create_event(
            _dt(2024, 6, 3, 9), _dt(2024, 6, 3, 10), members=[parent]
        )
        event_factory.add_member(event, kid, ParticipationType.AWARE)

        assert service.get_busy_slots(kid.id, _dt(2024, 6, 3, 0), _dt(2024, 6, 4, 0)) == []
        assert len(service.get_busy_slots(parent.id, _dt(2024, 6, 3, 0), _dt(2024, 6, 4, 0))) == 1

    def test_deleted_and_moved_occurrences(self, service, event_factory, parent):
        series = event_factory.create_recurring_event(
            _dt(2024, 6, 3), _dt(2024, 6, 3, 10), "FREQ=DAILY", members=[parent]
        )
        event_factory.create_exception(series, _dt(2024, 6, 3), is_deleted=True)
        event_factory.create_exception(
            series,
            _dt(2024, 6, 4),
            override_start_time=_dt(2024, 6, 5, 14),
            override_end_time=_dt(2024, 6, 5, 15),
        )

        busy_slots = service.get_busy_slots(parent.id, _dt(2024, 6, 3, 0), _dt(2024, 6, 5, 0))

        assert busy_slots == []

    def test_external_events_are_busy(self, service, parent, kid):
        external_calendar_factory = ExternalCalendarFactory()
        subscription = external_calendar_factory.create_subscription(parent)
        inactive_subscription = external_calendar_factory.create_subscription(
            parent, is_active=False
        )
        external_calendar_factory.create_event(
            subscription, _dt(2024, 6, 3, 13), _dt(2024, 6, 3, 14), title="Work meeting"
        )
        external_calendar_factory.create_event(
            inactive_subscription, _dt(2024, 6, 3, 15), _dt(2024, 6, 3, 16)
        )

        busy_slots = service.get_busy_slots(parent.id, _dt(2024, 6, 3, 0), _dt(2024, 6, 4, 0))

        assert _bounds(busy_slots) == [(_dt(2024, 6, 3, 13), _dt(2024, 6, 3, 14))]
        assert busy_slots[0].title == "Work meeting"
        assert service.get_busy_slots(kid.id, _dt(2024, 6, 3, 0), _dt(2024, 6, 4, 0)) == []

    def test_invalid_rule_is_skipped(self, service, event_factory, parent, caplog):
        event_factory.create_recurring_event(
            _dt(2024, 6, 3), _dt(2024, 6, 3, 10), "FREQ=BOGUS", members=[parent]
        )
        event_factory.create_event(_dt(2024, 6, 3, 12), _dt(2024, 6, 3, 13), members=[parent])

        with caplog.at_level(logging.ERROR):
            busy_slots = service.get_busy_slots(parent.id, _dt(2024, 6, 3, 0), _dt(2024, 6, 4, 0))

        assert _bounds(busy_slots) == [(_dt(2024, 6, 3, 12), _dt(2024, 6, 3, 13))]
        assert "invalid recurrence rule" in caplog.text

    def test_empty_window(self, service, event_factory, parent):
        event_factory.create_event(_dt(2024, 6, 3, 9), _dt(2024, 6, 3, 10), members=[parent])

        assert service.get_busy_slots(parent.id, _dt(2024, 6, 3, 10), _dt(2024, 6, 3, 9)) == []


@pytest.mark.django_db
class TestCalendarAvailabilityServiceFreeBusy:
    def test_free_busy_per_user(self, service, event_factory, parent, kid):
        event_factory.create_event(_dt(2024, 6, 3, 10), _dt(2024, 6, 3, 11), members=[parent])
        event_factory.create_event(
            _dt(2024, 6, 3, 10, 30), _dt(2024, 6, 3, 10, 45), members=[parent, kid]
        )

        free_busy = service.get_free_busy(
            [parent.id, kid.id, parent.id], _dt(2024, 6, 3, 0), _dt(2024, 6, 4, 0)
        )

        assert [(entry.user_id, entry.user_display_name) for entry in free_busy] == [
            (parent.id, "Ana Silva"),
            (kid.id, "Leo Silva"),
        ]
        assert _bounds(free_busy[0].busy_slots) == [(_dt(2024, 6, 3, 10), _dt(2024, 6, 3, 11))]
        assert _bounds(free_busy[1].busy_slots) == [
            (_dt(2024, 6, 3, 10, 30), _dt(2024, 6, 3, 10, 45))
        ]

    def test_free_busy_unknown_user(self, service):
        free_busy = service.get_free_busy([99999], _dt(2024, 6, 3, 0), _dt(2024, 6, 4, 0))

        assert len(free_busy) == 1
        assert free_busy[0].user_display_name == UNKNOWN_USER_DISPLAY_NAME
        assert free_busy[0].busy_slots == []

    def test_free_busy_without_users(self, service):
        assert service.get_free_busy([], _dt(2024, 6, 3, 0), _dt(2024, 6, 4, 0)) == []


@pytest.mark.django_db
class TestCalendarAvailabilityServiceFindSlots:
    def test_finds_slots_free_for_every_user(self, service, event_factory, parent, kid):
        event_factory.create_event(_dt(2024, 6, 3, 10), _dt(2024, 6, 3, 11), members=[parent])
        event_factory.create_event(_dt(2024, 6, 3, 10, 30), _dt(2024, 6, 3, 10, 45), members=[kid])

        slots = service.find_available_slots(
            FindSlotsInputData(
                user_ids=[parent.id, kid.id],
                start_time=_dt(2024, 6, 3, 9),
                end_time=_dt(2024, 6, 3, 12),
                duration_minutes=30,
            )
        )

        assert _bounds(slots) == [
            (_dt(2024, 6, 3, 9), _dt(2024, 6, 3, 9, 30)),
            (_dt(2024, 6, 3, 9, 30), _dt(2024, 6, 3, 10)),
            (_dt(2024, 6, 3, 11), _dt(2024, 6, 3, 11, 30)),
            (_dt(2024, 6, 3, 11, 30), _dt(2024, 6, 3, 12)),
        ]

    def test_other_users_events_do_not_block(self, service, event_factory, parent, kid):
        event_factory.create_event(_dt(2024, 6, 3, 9), _dt(2024, 6, 3, 12), members=[kid])

        slots = service.find_available_slots(
            FindSlotsInputData(
                user_ids=[parent.id],
                start_time=_dt(2024, 6, 3, 9),
                end_time=_dt(2024, 6, 3, 12),
                duration_minutes=60,
                max_results=2,
            )
        )

        assert _bounds(slots) == [
            (_dt(2024, 6, 3, 9), _dt(2024, 6, 3, 10)),
            (_dt(2024, 6, 3, 10), _dt(2024, 6, 3, 11)),
        ]

    def test_preferred_hours_in_timezone(self, service, parent):
        slots = service.find_available_slots(
            FindSlotsInputData(
                user_ids=[parent.id],
                start_time=_dt(2024, 6, 3, 0),
                end_time=_dt(2024, 6, 4, 0),
                duration_minutes=60,
                preferred_start_hour=9,
                preferred_end_hour=10,
                timezone="America/Sao_Paulo",
            )
        )

        assert _bounds(slots) == [(_dt(2024, 6, 3, 12), _dt(2024, 6, 3, 13))]

    def test_unknown_timezone_falls_back_to_utc(self, service, parent, caplog):
        with caplog.at_level(logging.WARNING):
            slots = service.find_available_slots(
                FindSlotsInputData(
                    user_ids=[parent.id],
                    start_time=_dt(2024, 6, 3, 0),
                    end_time=_dt(2024, 6, 4, 0),
                    duration_minutes=60,
                    preferred_start_hour=9,
                    preferred_end_hour=10,
                    timezone="Nowhere/Land",
                )
            )

        assert _bounds(slots) == [(_dt(2024, 6, 3, 9), _dt(2024, 6, 3, 10))]
        assert "Unknown timezone Nowhere/Land" in caplog.text
