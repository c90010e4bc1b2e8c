import datetime
from collections.abc import Iterable

from django.db.models import Manager

from calendar_events.constants import ParticipationType
from calendar_events.querysets import (
    CalendarEventQuerySet,
    ExternalCalendarEventQuerySet,
    ExternalCalendarSubscriptionQuerySet,
)


class CalendarEventManager(Manager):
    def get_queryset(self) -> CalendarEventQuerySet:
        return CalendarEventQuerySet(self.model, using=self._db)

    def filter_in_range(self, start_time: datetime.datetime, end_time: datetime.datetime):
        """
        Filters series that may have occurrences in the specified range.
        :param start_time: Range start (inclusive).
        :param end_time: Range end (exclusive).
        :return: Filtered queryset.
        """
        return self.get_queryset().filter_in_range(start_time, end_time)

    def filter_by_members(
        self, user_ids: Iterable[int], participation_type: ParticipationType | None = None
    ):
        return self.get_queryset().filter_by_members(user_ids, participation_type)

    def filter_with_reminders(self):
        return self.get_queryset().filter_with_reminders()


class ExternalCalendarEventManager(Manager):
    def get_queryset(self) -> ExternalCalendarEventQuerySet:
        return ExternalCalendarEventQuerySet(self.model, using=self._db)

    def filter_active(self):
        """Filters events whose subscription is active."""
        return self.get_queryset().filter_active()


class ExternalCalendarSubscriptionManager(Manager):
    def get_queryset(self) -> ExternalCalendarSubscriptionQuerySet:
        return ExternalCalendarSubscriptionQuerySet(self.model, using=self._db)

    def filter_by_user(self, user_id: int):
        return self.get_queryset().filter_by_user(user_id)
