import datetime
from dataclasses import dataclass
from dataclasses import field as dataclass_field

from calendar_events.constants import ParticipationType


@dataclass
class CalendarEventMemberInputData:
    user_id: int
    participation_type: str = ParticipationType.INVOLVED


@dataclass
class CalendarEventInputData:
    title: str
    start_time: datetime.datetime
    end_time: datetime.datetime
    description: str = ""
    location: str = ""
    color: str = ""
    is_all_day: bool = False
    recurrence_rule: str | None = None
    recurrence_end: datetime.datetime | None = None
    reminder_minutes_before: int | None = None
    members: list[CalendarEventMemberInputData] | None = None


@dataclass(frozen=True)
class DeletedOccurrence:
    """The occurrence at `original_start_time` was removed from its series."""

    original_start_time: datetime.datetime


@dataclass(frozen=True)
class OverriddenOccurrence:
    """
    The occurrence at `original_start_time` replaces some of its series values.
    Fields left as None fall back to the series values.
    """

    original_start_time: datetime.datetime
    title: str | None = None
    description: str | None = None
    location: str | None = None
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    is_all_day: bool | None = None


@dataclass(frozen=True)
class NotOverridden:
    original_start_time: datetime.datetime


OccurrenceOverride = DeletedOccurrence | OverriddenOccurrence | NotOverridden


@dataclass
class CalendarEventOccurrenceData:
    event_id: int | None
    title: str
    start_time: datetime.datetime
    end_time: datetime.datetime
    description: str = ""
    location: str = ""
    color: str = ""
    is_all_day: bool = False
    original_start_time: datetime.datetime | None = None
    is_recurring: bool = False
    is_external: bool = False
    subscription_id: int | None = None
    owner_display_name: str | None = None


@dataclass
class TimeSlot:
    start_time: datetime.datetime
    end_time: datetime.datetime
    title: str | None = None


@dataclass
class FreeBusyData:
    user_id: int
    user_display_name: str
    busy_slots: list[TimeSlot] = dataclass_field(default_factory=list)


@dataclass
class FindSlotsInputData:
    user_ids: list[int]
    start_time: datetime.datetime
    end_time: datetime.datetime
    duration_minutes: int
    max_results: int = 10
    preferred_start_hour: int | None = None
    preferred_end_hour: int | None = None
    timezone: str | None = None


@dataclass
class ReminderNotificationData:
    user_id: int
    event_id: int
    title: str
    body: str
    start_time: datetime.datetime
    # Original start for recurring occurrences, identifies the occurrence in its series
    occurrence_start_time: datetime.datetime
    minutes_before: int


@dataclass
class ExternalCalendarSubscriptionInputData:
    name: str
    ics_url: str
    color: str = ""
    sync_interval_minutes: int = 60
    is_active: bool = True
