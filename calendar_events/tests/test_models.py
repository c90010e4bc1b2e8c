import datetime

from django.core.exceptions import ValidationError
from django.db import IntegrityError

import pytest

from calendar_events.constants import ParticipationType
from calendar_events.factories import ExternalCalendarFactory
from calendar_events.models import CalendarEvent, CalendarEventException, ExternalCalendarEvent
from calendar_events.services.dataclasses import DeletedOccurrence, OverriddenOccurrence
from users.factories import UserFactory


def _dt(year, month, day, hour=9, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


def test_calendar_event_properties():
    event = CalendarEvent(
        title="Piano lesson",
        start_time=_dt(2024, 6, 3, 17),
        end_time=_dt(2024, 6, 3, 17, 45),
        recurrence_rule="FREQ=WEEKLY;BYDAY=MO",
    )

    assert event.is_recurring
    assert event.duration == datetime.timedelta(minutes=45)
    event.recurrence_rule = ""
    assert not event.is_recurring


def test_calendar_event_clean_rejects_end_before_start():
    event = CalendarEvent(
        title="Backwards", start_time=_dt(2024, 6, 3, 10), end_time=_dt(2024, 6, 3, 9)
    )

    with pytest.raises(ValidationError):
        event.clean()


def test_exception_to_override():
    deleted = CalendarEventException(original_start_time=_dt(2024, 6, 3), is_deleted=True)
    modified = CalendarEventException(
        original_start_time=_dt(2024, 6, 4),
        override_title="Moved",
        override_start_time=_dt(2024, 6, 4, 10),
    )

    assert deleted.to_override() == DeletedOccurrence(original_start_time=_dt(2024, 6, 3))
    assert modified.to_override() == OverriddenOccurrence(
        original_start_time=_dt(2024, 6, 4),
        title="Moved",
        start_time=_dt(2024, 6, 4, 10),
    )


def test_exception_clear_overrides():
    exception = CalendarEventException(
        original_start_time=_dt(2024, 6, 4),
        override_title="Moved",
        override_location="Park",
        override_is_all_day=True,
    )

    exception.clear_overrides()

    assert exception.override_title is None
    assert exception.override_location is None
    assert exception.override_is_all_day is None


@pytest.mark.django_db
def test_member_is_unique_per_event(event_factory):
    user = UserFactory().create_user()
    event = event_factory.create_event(_dt(2024, 6, 3), _dt(2024, 6, 3, 10), members=[user])

    with pytest.raises(IntegrityError):
        event_factory.add_member(event, user, ParticipationType.AWARE)


@pytest.mark.django_db
def test_exception_is_unique_per_occurrence(event_factory):
    event = event_factory.create_recurring_event(
        _dt(2024, 6, 3), _dt(2024, 6, 3, 10), "FREQ=DAILY"
    )
    event_factory.create_exception(event, _dt(2024, 6, 4), is_deleted=True)

    with pytest.raises(IntegrityError):
        event_factory.create_exception(event, _dt(2024, 6, 4), override_title="Again")


@pytest.mark.django_db
class TestCalendarEventQuerySet:
    def test_filter_in_range(self, event_factory):
        inside = event_factory.create_event(_dt(2024, 6, 3, 9), _dt(2024, 6, 3, 10))
        overlapping_start = event_factory.create_event(_dt(2024, 6, 3, 7), _dt(2024, 6, 3, 8, 30))
        ending_at_start = event_factory.create_event(_dt(2024, 6, 3, 7), _dt(2024, 6, 3, 8))
        after = event_factory.create_event(_dt(2024, 6, 3, 12), _dt(2024, 6, 3, 13))
        old_series = event_factory.create_recurring_event(
            _dt(2024, 1, 1), _dt(2024, 1, 1, 10), "FREQ=DAILY"
        )
        future_series = event_factory.create_recurring_event(
            _dt(2024, 7, 1), _dt(2024, 7, 1, 10), "FREQ=DAILY"
        )

        events = set(CalendarEvent.objects.filter_in_range(_dt(2024, 6, 3, 8), _dt(2024, 6, 3, 12)))

        assert inside in events
        assert overlapping_start in events
        assert old_series in events
        assert ending_at_start not in events
        assert after not in events
        assert future_series not in events

    def test_filter_by_members(self, event_factory):
        user = UserFactory().create_user()
        other_user = UserFactory().create_user()
        involved = event_factory.create_event(
            _dt(2024, 6, 3), _dt(2024, 6, 3, 10), members=[user, other_user]
        )
        aware = event_factory.create_event(
            _dt(2024, 6, 4),
            _dt(2024, 6, 4, 10),
            members=[user],
            participation_type=ParticipationType.AWARE,
        )
        event_factory.create_event(_dt(2024, 6, 5), _dt(2024, 6, 5, 10), members=[other_user])

        assert list(CalendarEvent.objects.filter_by_members([user.id])) == [involved, aware]
        assert list(
            CalendarEvent.objects.filter_by_members([user.id], ParticipationType.INVOLVED)
        ) == [involved]

    def test_filter_recurring(self, event_factory):
        single = event_factory.create_event(_dt(2024, 6, 3), _dt(2024, 6, 3, 10))
        series = event_factory.create_recurring_event(
            _dt(2024, 6, 3), _dt(2024, 6, 3, 10), "FREQ=WEEKLY"
        )

        assert list(CalendarEvent.objects.all().filter_recurring()) == [series]
        assert list(CalendarEvent.objects.all().filter_non_recurring()) == [single]


@pytest.mark.django_db
def test_external_event_queryset():
    user = UserFactory().create_user()
    other_user = UserFactory().create_user()
    factory = ExternalCalendarFactory()
    subscription = factory.create_subscription(user)
    inactive_subscription = factory.create_subscription(user, is_active=False)
    other_subscription = factory.create_subscription(other_user)
    school = factory.create_event(subscription, _dt(2024, 6, 3, 8), _dt(2024, 6, 3, 12))
    factory.create_event(inactive_subscription, _dt(2024, 6, 3, 8), _dt(2024, 6, 3, 12))
    factory.create_event(other_subscription, _dt(2024, 6, 3, 8), _dt(2024, 6, 3, 12))
    factory.create_event(subscription, _dt(2024, 6, 4, 8), _dt(2024, 6, 4, 12))

    events = (
        ExternalCalendarEvent.objects.filter_active()
        .filter_in_range(_dt(2024, 6, 3, 0), _dt(2024, 6, 4, 0))
        .filter_by_owners([user.id])
    )

    assert list(events) == [school]
