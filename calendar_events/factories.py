import datetime

from model_bakery import baker

from calendar_events.constants import ParticipationType
from calendar_events.models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
    ExternalCalendarEvent,
    ExternalCalendarSubscription,
)


class CalendarEventFactory:
    def create_event(
        self,
        start_time: datetime.datetime,
        end_time: datetime.datetime,
        title: str = "Event",
        members=None,
        participation_type: str = ParticipationType.INVOLVED,
        **kwargs,
    ) -> CalendarEvent:
        """
        Create a calendar event with the given users as members.
        :param members: users added as members with `participation_type`.
        """
        event = baker.make(
            CalendarEvent,
            title=title,
            start_time=start_time,
            end_time=end_time,
            recurrence_rule=kwargs.pop("recurrence_rule", ""),
            recurrence_end=kwargs.pop("recurrence_end", None),
            reminder_minutes_before=kwargs.pop("reminder_minutes_before", None),
            created_by=kwargs.pop("created_by", None),
            split_from=kwargs.pop("split_from", None),
            **kwargs,
        )
        for user in members or []:
            self.add_member(event, user, participation_type)
        return event

    def create_recurring_event(
        self,
        start_time: datetime.datetime,
        end_time: datetime.datetime,
        recurrence_rule: str,
        title: str = "Recurring event",
        members=None,
        **kwargs,
    ) -> CalendarEvent:
        return self.create_event(
            start_time=start_time,
            end_time=end_time,
            title=title,
            members=members,
            recurrence_rule=recurrence_rule,
            **kwargs,
        )

    @staticmethod
    def add_member(
        event: CalendarEvent, user, participation_type: str = ParticipationType.INVOLVED
    ) -> CalendarEventMember:
        return baker.make(
            CalendarEventMember, event=event, user=user, participation_type=participation_type
        )

    @staticmethod
    def create_exception(
        event: CalendarEvent, original_start_time: datetime.datetime, **kwargs
    ) -> CalendarEventException:
        return baker.make(
            CalendarEventException,
            event=event,
            original_start_time=original_start_time,
            is_deleted=kwargs.pop("is_deleted", False),
            override_title=kwargs.pop("override_title", None),
            override_description=kwargs.pop("override_description", None),
            override_location=kwargs.pop("override_location", None),
            override_start_time=kwargs.pop("override_start_time", None),
            override_end_time=kwargs.pop("override_end_time", None),
            override_is_all_day=kwargs.pop("override_is_all_day", None),
            **kwargs,
        )


class ExternalCalendarFactory:
    def create_subscription(self, user, **kwargs) -> ExternalCalendarSubscription:
        return baker.make(
            ExternalCalendarSubscription,
            user=user,
            name=kwargs.pop("name", "School calendar"),
            ics_url=kwargs.pop("ics_url", "https://calendar.example.com/school.ics"),
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )

    def create_event(
        self,
        subscription: ExternalCalendarSubscription,
        start_time: datetime.datetime,
        end_time: datetime.datetime,
        title: str = "External event",
        **kwargs,
    ) -> ExternalCalendarEvent:
        return baker.make(
            ExternalCalendarEvent,
            subscription=subscription,
            start_time=start_time,
            end_time=end_time,
            title=title,
            is_all_day=kwargs.pop("is_all_day", False),
            **kwargs,
        )
