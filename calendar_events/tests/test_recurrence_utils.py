import datetime

import pytest

from calendar_events.exceptions import RecurrenceRuleParseError
from calendar_events.recurrence_utils import RecurrenceRuleEvaluator


# Helpers
def _dt(year, month, day, hour=9, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


@pytest.fixture
def evaluator():
    return RecurrenceRuleEvaluator()


def test_normalize_rule_strips_prefix():
    assert RecurrenceRuleEvaluator.normalize_rule("RRULE:FREQ=DAILY") == "FREQ=DAILY"
    assert RecurrenceRuleEvaluator.normalize_rule(" rrule:FREQ=DAILY ") == "FREQ=DAILY"
    assert RecurrenceRuleEvaluator.normalize_rule("FREQ=WEEKLY;BYDAY=MO") == "FREQ=WEEKLY;BYDAY=MO"


@pytest.mark.parametrize(
    "rule",
    [
        "",
        "NOT_A_RULE",
        "FREQ=SOMETIMES",
        "FREQ=WEEKLY;BYDAY=XX",
        # UNTIL must be in UTC when the series start is aware
        "FREQ=DAILY;UNTIL=20240610T090000",
    ],
)
def test_parse_invalid_rule_raises(rule):
    with pytest.raises(RecurrenceRuleParseError):
        RecurrenceRuleEvaluator.parse(rule, _dt(2024, 6, 3))


def test_validate_accepts_rule_without_series_start(evaluator):
    evaluator.validate("FREQ=WEEKLY;BYDAY=MO,WE,FR")


def test_evaluate_daily_rule_in_window(evaluator):
    starts = list(
        evaluator.evaluate(
            "FREQ=DAILY",
            series_start=_dt(2024, 6, 3),
            series_end=_dt(2024, 6, 3, 9, 15),
            window_start=_dt(2024, 6, 3, 0),
            window_end=_dt(2024, 6, 8, 0),
        )
    )

    assert starts == [_dt(2024, 6, day) for day in range(3, 8)]


def test_evaluate_includes_occurrence_started_before_window(evaluator):
    # 09:00-10:00 occurrence overlaps a window starting at 09:30
    starts = list(
        evaluator.evaluate(
            "FREQ=DAILY",
            series_start=_dt(2024, 6, 3),
            series_end=_dt(2024, 6, 3, 10),
            window_start=_dt(2024, 6, 4, 9, 30),
            window_end=_dt(2024, 6, 4, 12),
        )
    )

    assert starts == [_dt(2024, 6, 4)]


def test_evaluate_excludes_occurrence_ending_at_window_start(evaluator):
    starts = list(
        evaluator.evaluate(
            "FREQ=DAILY",
            series_start=_dt(2024, 6, 3),
            series_end=_dt(2024, 6, 3, 10),
            window_start=_dt(2024, 6, 4, 10),
            window_end=_dt(2024, 6, 4, 12),
        )
    )

    assert starts == []


def test_evaluate_excludes_occurrence_starting_at_window_end(evaluator):
    starts = list(
        evaluator.evaluate(
            "FREQ=DAILY",
            series_start=_dt(2024, 6, 3),
            series_end=_dt(2024, 6, 3, 10),
            window_start=_dt(2024, 6, 4, 0),
            window_end=_dt(2024, 6, 5, 9),
        )
    )

    assert starts == [_dt(2024, 6, 4)]


def test_evaluate_zero_length_occurrence_at_window_start(evaluator):
    starts = list(
        evaluator.evaluate(
            "FREQ=DAILY",
            series_start=_dt(2024, 6, 3),
            series_end=_dt(2024, 6, 3),
            window_start=_dt(2024, 6, 4),
            window_end=_dt(2024, 6, 5),
        )
    )

    assert starts == [_dt(2024, 6, 4)]


def test_evaluate_respects_count(evaluator):
    starts = list(
        evaluator.evaluate(
            "FREQ=DAILY;COUNT=3",
            series_start=_dt(2024, 6, 3),
            series_end=_dt(2024, 6, 3, 10),
            window_start=_dt(2024, 6, 1),
            window_end=_dt(2024, 7, 1),
        )
    )

    assert starts == [_dt(2024, 6, 3), _dt(2024, 6, 4), _dt(2024, 6, 5)]


def test_evaluate_unbounded_rule_stops_at_window_end(evaluator):
    starts = list(
        evaluator.evaluate(
            "FREQ=HOURLY",
            series_start=_dt(2024, 6, 3),
            series_end=_dt(2024, 6, 3, 9, 15),
            window_start=_dt(2030, 1, 1, 9),
            window_end=_dt(2030, 1, 1, 13),
        )
    )

    assert starts == [_dt(2030, 1, 1, hour) for hour in range(9, 13)]


def test_evaluate_empty_window_yields_nothing(evaluator):
    starts = evaluator.evaluate(
        "FREQ=DAILY",
        series_start=_dt(2024, 6, 3),
        series_end=_dt(2024, 6, 3, 10),
        window_start=_dt(2024, 6, 5),
        window_end=_dt(2024, 6, 5),
    )

    assert list(starts) == []


def test_evaluate_raises_parse_error_eagerly(evaluator):
    with pytest.raises(RecurrenceRuleParseError):
        evaluator.evaluate(
            "FREQ=NEVER",
            series_start=_dt(2024, 6, 3),
            series_end=_dt(2024, 6, 3, 10),
            window_start=_dt(2024, 6, 5),
            window_end=_dt(2024, 6, 5),
        )


def test_continuation_rule_without_count_is_unchanged(evaluator):
    rule = evaluator.continuation_rule(
        "RRULE:FREQ=WEEKLY;BYDAY=MO", _dt(2024, 6, 3), _dt(2024, 6, 17)
    )

    assert rule == "FREQ=WEEKLY;BYDAY=MO"


def test_continuation_rule_with_count_keeps_remaining_occurrences(evaluator):
    # Jun 3, 4, 5 were used before the split, two are left
    rule = evaluator.continuation_rule("FREQ=DAILY;COUNT=5", _dt(2024, 6, 3), _dt(2024, 6, 6))

    assert rule == "FREQ=DAILY;COUNT=2"


def test_continuation_rule_returns_none_when_nothing_left(evaluator):
    rule = evaluator.continuation_rule("FREQ=DAILY;COUNT=2", _dt(2024, 6, 3), _dt(2024, 6, 10))

    assert rule is None
