"""Recurrence utilities: evaluating RFC 5545 recurrence rules with dateutil.

Rules are stored as the RRULE body (``FREQ=DAILY;COUNT=5``). A leading
``RRULE:`` prefix is accepted and stripped.
"""

import datetime
from collections.abc import Iterator

from dateutil.rrule import rrule, rruleset, rrulestr

from calendar_events.exceptions import RecurrenceRuleParseError


RRULE_PREFIX = "RRULE:"


def truncate_to_seconds(value: datetime.datetime | None) -> datetime.datetime | None:
    """Drop sub-second precision, which recurrence rules can't represent."""
    if value is None:
        return None
    return value.replace(microsecond=0)


class RecurrenceRuleEvaluator:
    """Produces occurrence start instants for a rule, a series start and a window."""

    @staticmethod
    def normalize_rule(rule: str) -> str:
        rule = rule.strip()
        if rule.upper().startswith(RRULE_PREFIX):
            rule = rule[len(RRULE_PREFIX) :]
        return rule

    @staticmethod
    def parse(rule: str, series_start: datetime.datetime) -> rrule | rruleset:
        """Parse ``rule`` anchored at ``series_start``.

        Raises ``RecurrenceRuleParseError`` for malformed rules, including an
        UNTIL value that is not in UTC while ``series_start`` is aware.
        """
        body = RecurrenceRuleEvaluator.normalize_rule(rule or "")
        if not body:
            raise RecurrenceRuleParseError("Recurrence rule is empty.")
        try:
            return rrulestr(body, dtstart=series_start)
        except (ValueError, TypeError, KeyError) as e:
            raise RecurrenceRuleParseError(f"Invalid recurrence rule '{rule}': {e}") from e

    def validate(self, rule: str, series_start: datetime.datetime | None = None) -> None:
        if series_start is None:
            series_start = datetime.datetime.now(tz=datetime.UTC)
        self.parse(rule, series_start)

    def evaluate(
        self,
        rule: str,
        series_start: datetime.datetime,
        series_end: datetime.datetime,
        window_start: datetime.datetime,
        window_end: datetime.datetime,
    ) -> Iterator[datetime.datetime]:
        """
        Lazily yield, in ascending order, every occurrence start whose
        occurrence ``[start, start + duration)`` overlaps ``[window_start, window_end)``.
        The duration is ``series_end - series_start``.
        The rule is parsed before returning, so parse errors are raised eagerly.
        """
        recurrence = self.parse(rule, series_start)
        if window_start >= window_end:
            return iter(())
        return self._iter_window(recurrence, series_end - series_start, window_start, window_end)

    @staticmethod
    def _iter_window(
        recurrence: rrule | rruleset,
        duration: datetime.timedelta,
        window_start: datetime.datetime,
        window_end: datetime.datetime,
    ) -> Iterator[datetime.datetime]:
        # Starts after window_start - duration are exactly the ones ending after window_start.
        # Zero-length occurrences starting at window_start are kept.
        is_instant = duration == datetime.timedelta(0)
        for occurrence_start in recurrence.xafter(window_start - duration, inc=is_instant):
            if occurrence_start >= window_end:
                break
            yield occurrence_start

    def continuation_rule(
        self, rule: str, series_start: datetime.datetime, split_start: datetime.datetime
    ) -> str | None:
        """Return ``rule`` adjusted to continue a series from ``split_start``.

        Rules with a COUNT get the number of occurrences left at ``split_start``.
        Returns ``None`` if no occurrence is left.
        """
        body = self.normalize_rule(rule)
        parts = [part for part in body.split(";") if part]
        count_index = next(
            (index for index, part in enumerate(parts) if part.upper().startswith("COUNT=")),
            None,
        )
        if count_index is None:
            return body

        recurrence = self.parse(body, series_start)
        try:
            count = int(parts[count_index].split("=", 1)[1])
        except ValueError as e:
            raise RecurrenceRuleParseError(f"Invalid recurrence rule '{rule}': {e}") from e

        used = 0
        for occurrence_start in recurrence:
            if occurrence_start >= split_start:
                break
            used += 1

        remaining = count - used
        if remaining <= 0:
            return None
        parts[count_index] = f"COUNT={remaining}"
        return ";".join(parts)
