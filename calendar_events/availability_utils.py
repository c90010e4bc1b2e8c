"""Pure helpers to merge busy time slots and search free slots between them."""

import dataclasses
import datetime
import zoneinfo
from collections.abc import Iterable

from calendar_events.services.dataclasses import TimeSlot


def merge_time_slots(slots: Iterable[TimeSlot]) -> list[TimeSlot]:
    """
    Merge overlapping or touching slots into ordered, disjoint slots.
    A slot starting exactly when the previous one ends is merged into it.
    Slots without a positive length are discarded. The input is not modified.
    """
    ordered = sorted(
        (slot for slot in slots if slot.end_time > slot.start_time),
        key=lambda slot: (slot.start_time, slot.end_time, slot.title or ""),
    )
    merged: list[TimeSlot] = []
    for slot in ordered:
        if merged and slot.start_time <= merged[-1].end_time:
            if slot.end_time > merged[-1].end_time:
                merged[-1].end_time = slot.end_time
            continue
        merged.append(dataclasses.replace(slot))
    return merged


def _local_datetime_at_hour(
    local_date: datetime.date, hour: int, zone: datetime.tzinfo
) -> datetime.datetime:
    return datetime.datetime.combine(local_date, datetime.time(hour), tzinfo=zone).astimezone(
        datetime.UTC
    )


def _next_day_start(
    candidate: datetime.datetime,
    preferred_start_hour: int | None,
    zone: datetime.tzinfo,
) -> datetime.datetime:
    local_date = candidate.astimezone(zone).date() + datetime.timedelta(days=1)
    return _local_datetime_at_hour(local_date, preferred_start_hour or 0, zone)


def find_slots_in_gap(
    gap_start: datetime.datetime,
    gap_end: datetime.datetime,
    duration: datetime.timedelta,
    max_results: int,
    results: list[TimeSlot],
    preferred_start_hour: int | None = None,
    preferred_end_hour: int | None = None,
    zone: datetime.tzinfo | None = None,
) -> None:
    """
    Append to ``results`` the packed candidates of ``duration`` that fit in
    ``[gap_start, gap_end)`` and respect ``[preferred_start_hour, preferred_end_hour)``
    in ``zone`` (UTC when not given).
    """
    if gap_end <= gap_start or len(results) >= max_results:
        return
    if zone is None:
        zone = datetime.UTC

    candidate = gap_start
    while candidate + duration <= gap_end and len(results) < max_results:
        local_candidate = candidate.astimezone(zone)

        if preferred_start_hour is not None and local_candidate.hour < preferred_start_hour:
            next_candidate = _local_datetime_at_hour(
                local_candidate.date(), preferred_start_hour, zone
            )
            if next_candidate <= candidate:
                next_candidate = _local_datetime_at_hour(
                    local_candidate.date() + datetime.timedelta(days=1), preferred_start_hour, zone
                )
            candidate = next_candidate
            continue

        if preferred_end_hour is not None and local_candidate.hour >= preferred_end_hour:
            candidate = _next_day_start(candidate, preferred_start_hour, zone)
            continue

        slot_end = candidate + duration
        if preferred_end_hour is not None and slot_end > _local_datetime_at_hour(
            local_candidate.date(), preferred_end_hour, zone
        ):
            # Never truncated nor moved within the same day.
            candidate = _next_day_start(candidate, preferred_start_hour, zone)
            continue

        results.append(TimeSlot(start_time=candidate, end_time=slot_end))
        candidate = slot_end


def find_free_slots(
    busy_slots: Iterable[TimeSlot],
    window_start: datetime.datetime,
    window_end: datetime.datetime,
    duration: datetime.timedelta,
    max_results: int,
    preferred_start_hour: int | None = None,
    preferred_end_hour: int | None = None,
    zone: zoneinfo.ZoneInfo | None = None,
) -> list[TimeSlot]:
    """
    Find up to ``max_results`` free slots of ``duration`` inside
    ``[window_start, window_end)`` that do not overlap any of ``busy_slots``.
    :param busy_slots: busy slots of every participant, merged or not.
    :param window_start: search window start (inclusive).
    :param window_end: search window end (exclusive).
    :param duration: slot length, must be positive.
    :param max_results: maximum number of slots returned.
    :param preferred_start_hour: first local hour a slot may start at.
    :param preferred_end_hour: local hour every slot must end by.
    :param zone: timezone the preferred hours are expressed in, UTC when None.
    :return: slots ordered by start time.
    """
    if duration <= datetime.timedelta(0) or max_results <= 0 or window_start >= window_end:
        return []

    merged_busy = merge_time_slots(busy_slots)
    merged_busy.append(TimeSlot(start_time=window_end, end_time=window_end))

    results: list[TimeSlot] = []
    search_start = window_start
    for busy in merged_busy:
        if len(results) >= max_results:
            break
        find_slots_in_gap(
            gap_start=search_start,
            gap_end=min(busy.start_time, window_end),
            duration=duration,
            max_results=max_results,
            results=results,
            preferred_start_hour=preferred_start_hour,
            preferred_end_hour=preferred_end_hour,
            zone=zone,
        )
        if busy.end_time > search_start:
            search_start = busy.end_time
    return results[:max_results]
