import datetime

import pytest

from calendar_events.exceptions import RecurrenceRuleParseError
from calendar_events.models import CalendarEvent, CalendarEventException
from calendar_events.occurrence_utils import OccurrenceExpander, overlaps
from calendar_events.services.dataclasses import (
    DeletedOccurrence,
    NotOverridden,
    OverriddenOccurrence,
)


def _dt(year, month, day, hour=9, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


@pytest.fixture
def expander():
    return OccurrenceExpander()


@pytest.fixture
def standup():
    return CalendarEvent(
        id=1,
        title="Standup",
        color="#00ff00",
        location="Kitchen",
        start_time=_dt(2024, 6, 3),
        end_time=_dt(2024, 6, 3, 9, 15),
        recurrence_rule="FREQ=DAILY",
    )


def test_overlaps_uses_half_open_intervals():
    start, end = _dt(2024, 6, 3, 9), _dt(2024, 6, 3, 10)

    assert overlaps(start, end, _dt(2024, 6, 3, 9, 30), _dt(2024, 6, 3, 11))
    assert not overlaps(start, end, _dt(2024, 6, 3, 10), _dt(2024, 6, 3, 11))
    assert not overlaps(start, end, _dt(2024, 6, 3, 8), start)


def test_overlaps_zero_length_occurrence():
    instant = _dt(2024, 6, 3, 9)

    assert overlaps(instant, instant, instant, _dt(2024, 6, 3, 10))
    assert not overlaps(instant, instant, _dt(2024, 6, 3, 8), instant)


def test_expand_daily_series_over_work_week(expander, standup):
    occurrences = list(expander.expand(standup, _dt(2024, 6, 3, 0), _dt(2024, 6, 8, 0), []))

    assert len(occurrences) == 5
    assert [occurrence.start_time for occurrence in occurrences] == [
        _dt(2024, 6, day) for day in range(3, 8)
    ]
    for occurrence in occurrences:
        assert occurrence.end_time - occurrence.start_time == datetime.timedelta(minutes=15)
        assert occurrence.original_start_time == occurrence.start_time
        assert occurrence.event_id == standup.id
        assert occurrence.title == "Standup"
        assert occurrence.is_recurring


def test_expand_skips_deleted_occurrence(expander, standup):
    deleted = CalendarEventException(original_start_time=_dt(2024, 6, 3), is_deleted=True)

    occurrences = list(
        expander.expand(standup, _dt(2024, 6, 3, 0), _dt(2024, 6, 8, 0), [deleted])
    )

    assert [occurrence.start_time for occurrence in occurrences] == [
        _dt(2024, 6, day) for day in range(4, 8)
    ]
    assert all(
        occurrence.original_start_time == occurrence.start_time for occurrence in occurrences
    )


def test_expand_applies_override_keeping_series_color(expander, standup):
    modified = CalendarEventException(
        original_start_time=_dt(2024, 6, 4),
        override_title="Standup (moved)",
        override_start_time=_dt(2024, 6, 4, 10),
        override_end_time=_dt(2024, 6, 4, 10, 30),
    )

    occurrences = list(
        expander.expand(standup, _dt(2024, 6, 4, 0), _dt(2024, 6, 5, 0), [modified])
    )

    assert len(occurrences) == 1
    occurrence = occurrences[0]
    assert occurrence.title == "Standup (moved)"
    assert occurrence.start_time == _dt(2024, 6, 4, 10)
    assert occurrence.end_time == _dt(2024, 6, 4, 10, 30)
    assert occurrence.original_start_time == _dt(2024, 6, 4)
    assert occurrence.location == "Kitchen"
    assert occurrence.color == "#00ff00"


def test_expand_override_without_end_keeps_series_duration(expander, standup):
    modified = CalendarEventException(
        original_start_time=_dt(2024, 6, 4), override_start_time=_dt(2024, 6, 4, 11)
    )

    occurrence = next(
        expander.expand(standup, _dt(2024, 6, 4, 0), _dt(2024, 6, 5, 0), [modified])
    )

    assert occurrence.start_time == _dt(2024, 6, 4, 11)
    assert occurrence.end_time == _dt(2024, 6, 4, 11, 15)
    assert occurrence.title == "Standup"


def test_expand_stops_at_recurrence_end(expander, standup):
    standup.recurrence_end = _dt(2024, 6, 5)

    occurrences = list(expander.expand(standup, _dt(2024, 6, 3, 0), _dt(2024, 6, 8, 0), []))

    assert [occurrence.start_time for occurrence in occurrences] == [
        _dt(2024, 6, 3),
        _dt(2024, 6, 4),
        _dt(2024, 6, 5),
    ]


def test_expand_non_recurring_event(expander):
    event = CalendarEvent(
        id=2, title="Dentist", start_time=_dt(2024, 6, 3, 14), end_time=_dt(2024, 6, 3, 15)
    )

    occurrences = list(expander.expand(event, _dt(2024, 6, 3, 0), _dt(2024, 6, 4, 0), []))

    assert len(occurrences) == 1
    assert occurrences[0].start_time == event.start_time
    assert occurrences[0].original_start_time is None
    assert not occurrences[0].is_recurring
    assert list(expander.expand(event, _dt(2024, 6, 3, 15), _dt(2024, 6, 4, 0), [])) == []


def test_expand_empty_window(expander, standup):
    assert list(expander.expand(standup, _dt(2024, 6, 4), _dt(2024, 6, 4), [])) == []
    assert list(expander.expand(standup, _dt(2024, 6, 5), _dt(2024, 6, 4), [])) == []


def test_expand_invalid_rule_raises(expander, standup):
    standup.recurrence_rule = "FREQ=FORTNIGHTLY"

    with pytest.raises(RecurrenceRuleParseError):
        expander.expand(standup, _dt(2024, 6, 3, 0), _dt(2024, 6, 8, 0), [])


def test_get_override_defaults_to_not_overridden():
    deleted = CalendarEventException(original_start_time=_dt(2024, 6, 3), is_deleted=True)
    modified = CalendarEventException(original_start_time=_dt(2024, 6, 4), override_title="x")
    overrides = OccurrenceExpander.index_overrides([deleted, modified])

    assert isinstance(
        OccurrenceExpander.get_override(overrides, _dt(2024, 6, 3)), DeletedOccurrence
    )
    assert isinstance(
        OccurrenceExpander.get_override(overrides, _dt(2024, 6, 4)), OverriddenOccurrence
    )
    assert OccurrenceExpander.get_override(overrides, _dt(2024, 6, 5)) == NotOverridden(
        _dt(2024, 6, 5)
    )
