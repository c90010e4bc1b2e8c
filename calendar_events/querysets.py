import datetime
from collections.abc import Iterable

from django.db.models import Count, Prefetch, Q, QuerySet

from calendar_events.constants import ParticipationType


class CalendarEventQuerySet(QuerySet):
    def filter_recurring(self):
        return self.exclude(recurrence_rule="")

    def filter_non_recurring(self):
        return self.filter(recurrence_rule="")

    def filter_in_range(self, start_time: datetime.datetime, end_time: datetime.datetime):
        """
        Filter series that may have occurrences overlapping [start_time, end_time).
        Recurring series are only bounded by their first occurrence start, the
        exact occurrences are resolved later by the expansion.
        """
        return self.filter(
            Q(
                Q(end_time__gt=start_time) | Q(start_time__gte=start_time),
                recurrence_rule="",
                start_time__lt=end_time,
            )
            | (~Q(recurrence_rule="") & Q(start_time__lt=end_time))
        )

    def filter_by_members(
        self, user_ids: Iterable[int], participation_type: ParticipationType | None = None
    ):
        members_filter = Q(members__user_id__in=list(user_ids))
        if participation_type is not None:
            members_filter &= Q(members__participation_type=participation_type)
        return self.filter(members_filter).distinct()

    def filter_with_reminders(self):
        return self.filter(
            reminder_minutes_before__isnull=False,
            reminder_minutes_before__gt=0,
            members__participation_type=ParticipationType.INVOLVED,
        ).distinct()

    def prefetch_occurrence_data(self):
        from calendar_events.models import CalendarEventMember

        return self.prefetch_related(
            "exceptions",
            Prefetch(
                "members",
                queryset=CalendarEventMember.objects.select_related("user", "user__profile"),
            ),
        )


class ExternalCalendarEventQuerySet(QuerySet):
    def filter_active(self):
        return self.filter(subscription__is_active=True)

    def filter_in_range(self, start_time: datetime.datetime, end_time: datetime.datetime):
        return self.filter(start_time__lt=end_time, end_time__gt=start_time)

    def filter_by_owners(self, user_ids: Iterable[int]):
        return self.filter(subscription__user_id__in=list(user_ids))


class ExternalCalendarSubscriptionQuerySet(QuerySet):
    def filter_by_user(self, user_id: int):
        return self.filter(user_id=user_id)

    def annotate_event_count(self):
        return self.annotate(event_count=Count("events"))
