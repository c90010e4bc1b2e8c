import datetime
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

from calendar_events.recurrence_utils import RecurrenceRuleEvaluator
from calendar_events.services.dataclasses import (
    CalendarEventOccurrenceData,
    DeletedOccurrence,
    NotOverridden,
    OccurrenceOverride,
    OverriddenOccurrence,
)


if TYPE_CHECKING:
    from calendar_events.models import CalendarEvent, CalendarEventException


def overlaps(
    start_time: datetime.datetime,
    end_time: datetime.datetime,
    window_start: datetime.datetime,
    window_end: datetime.datetime,
) -> bool:
    if start_time == end_time:
        return window_start <= start_time < window_end
    return start_time < window_end and end_time > window_start


class OccurrenceExpander:
    """
    Expands a series into its visible occurrences for a window, applying the
    series' exceptions.
    """

    def __init__(self, recurrence_rule_evaluator: RecurrenceRuleEvaluator | None = None) -> None:
        self.recurrence_rule_evaluator = recurrence_rule_evaluator or RecurrenceRuleEvaluator()

    @staticmethod
    def index_overrides(
        exceptions: Iterable["CalendarEventException"],
    ) -> dict[datetime.datetime, OccurrenceOverride]:
        return {exception.original_start_time: exception.to_override() for exception in exceptions}

    @staticmethod
    def get_override(
        overrides: dict[datetime.datetime, OccurrenceOverride],
        original_start_time: datetime.datetime,
    ) -> OccurrenceOverride:
        return overrides.get(original_start_time) or NotOverridden(original_start_time)

    def expand(
        self,
        event: "CalendarEvent",
        window_start: datetime.datetime,
        window_end: datetime.datetime,
        exceptions: Iterable["CalendarEventException"] | None = None,
    ) -> Iterator[CalendarEventOccurrenceData]:
        """
        Expand ``event`` into the occurrences overlapping ``[window_start, window_end)``,
        ordered by the rule's generated start time.
        :param event: the series to expand.
        :param window_start: window start (inclusive).
        :param window_end: window end (exclusive).
        :param exceptions: the series exceptions, defaults to ``event.exceptions.all()``.
        :raises RecurrenceRuleParseError: if the series rule cannot be parsed.
        """
        if window_start >= window_end:
            return iter(())

        if not event.is_recurring:
            if not overlaps(event.start_time, event.end_time, window_start, window_end):
                return iter(())
            return iter((self._build_occurrence(event, event.start_time, event.end_time),))

        raw_starts = self.recurrence_rule_evaluator.evaluate(
            event.recurrence_rule, event.start_time, event.end_time, window_start, window_end
        )
        if exceptions is None:
            exceptions = event.exceptions.all()
        overrides = self.index_overrides(exceptions)
        return self._expand_recurring(event, raw_starts, overrides)

    def _expand_recurring(
        self,
        event: "CalendarEvent",
        raw_starts: Iterator[datetime.datetime],
        overrides: dict[datetime.datetime, OccurrenceOverride],
    ) -> Iterator[CalendarEventOccurrenceData]:
        duration = event.duration
        for occurrence_start in raw_starts:
            # The rule may generate past the series end, e.g. after a split.
            if event.recurrence_end is not None and occurrence_start > event.recurrence_end:
                break

            override = self.get_override(overrides, occurrence_start)
            if isinstance(override, DeletedOccurrence):
                continue
            if isinstance(override, OverriddenOccurrence):
                yield self._build_overridden_occurrence(event, override, duration)
            else:
                yield self._build_occurrence(
                    event,
                    occurrence_start,
                    occurrence_start + duration,
                    original_start_time=occurrence_start,
                )

    @staticmethod
    def _build_occurrence(
        event: "CalendarEvent",
        start_time: datetime.datetime,
        end_time: datetime.datetime,
        original_start_time: datetime.datetime | None = None,
    ) -> CalendarEventOccurrenceData:
        return CalendarEventOccurrenceData(
            event_id=event.id,
            title=event.title,
            description=event.description,
            location=event.location,
            start_time=start_time,
            end_time=end_time,
            is_all_day=event.is_all_day,
            color=event.color,
            original_start_time=original_start_time,
            is_recurring=event.is_recurring,
        )

    @staticmethod
    def _build_overridden_occurrence(
        event: "CalendarEvent",
        override: OverriddenOccurrence,
        duration: datetime.timedelta,
    ) -> CalendarEventOccurrenceData:
        start_time = override.start_time or override.original_start_time
        end_time = override.end_time or start_time + duration
        return CalendarEventOccurrenceData(
            event_id=event.id,
            title=override.title if override.title is not None else event.title,
            description=(
                override.description if override.description is not None else event.description
            ),
            location=override.location if override.location is not None else event.location,
            start_time=start_time,
            end_time=end_time,
            is_all_day=(
                override.is_all_day if override.is_all_day is not None else event.is_all_day
            ),
            color=event.color,
            original_start_time=override.original_start_time,
            is_recurring=True,
        )
