import datetime
import logging
from typing import Annotated

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from dependency_injector.wiring import Provide, inject

from calendar_events.constants import REMINDER_TITLE_PREFIX, ParticipationType
from calendar_events.exceptions import RecurrenceRuleParseError
from calendar_events.models import CalendarEvent, CalendarReminderDelivery
from calendar_events.occurrence_utils import OccurrenceExpander
from calendar_events.services.dataclasses import (
    CalendarEventOccurrenceData,
    ReminderNotificationData,
)
from calendar_events.services.notification_dispatchers import LoggingNotificationDispatcher
from calendar_events.services.protocols.notification_dispatcher import NotificationDispatcher


logger = logging.getLogger(__name__)

# Reminders are polled periodically, look a bit further ahead than the reminder itself.
DEFAULT_POLL_INTERVAL = datetime.timedelta(minutes=5)


class CalendarReminderService:
    @inject
    def __init__(
        self,
        occurrence_expander: Annotated[
            OccurrenceExpander | None, Provide["occurrence_expander"]
        ] = None,
        notification_dispatcher: Annotated[
            NotificationDispatcher | None, Provide["notification_dispatcher"]
        ] = None,
        poll_interval_minutes: int | None = None,
    ) -> None:
        self.occurrence_expander = occurrence_expander or OccurrenceExpander()
        self.notification_dispatcher = notification_dispatcher or LoggingNotificationDispatcher()
        self.poll_interval = (
            datetime.timedelta(minutes=poll_interval_minutes)
            if poll_interval_minutes
            else DEFAULT_POLL_INTERVAL
        )

    def get_due_reminders(
        self, now: datetime.datetime | None = None
    ) -> list[ReminderNotificationData]:
        """
        Get the reminders due at ``now`` for the involved members of events with
        a reminder. An occurrence is due when ``now`` is between its start minus
        the reminder and its start. Reminders already delivered are skipped.
        """
        now = now or timezone.now()
        events = list(
            CalendarEvent.objects.filter_with_reminders()
            .filter(
                Q(recurrence_rule="", start_time__gt=now)
                | (
                    ~Q(recurrence_rule="")
                    & (Q(recurrence_end__isnull=True) | Q(recurrence_end__gt=now))
                )
            )
            .prefetch_occurrence_data()
        )
        delivered = set(
            CalendarReminderDelivery.objects.filter(event__in=events).values_list(
                "event_id", "user_id", "occurrence_start_time"
            )
        )

        reminders: list[ReminderNotificationData] = []
        for event in events:
            minutes_before = event.reminder_minutes_before or 0
            reminder_delta = datetime.timedelta(minutes=minutes_before)
            involved_user_ids = [
                member.user_id
                for member in event.members.all()
                if member.participation_type == ParticipationType.INVOLVED
            ]
            try:
                occurrences = list(
                    self.occurrence_expander.expand(
                        event, now - reminder_delta, now + reminder_delta + self.poll_interval
                    )
                )
            except RecurrenceRuleParseError:
                logger.exception(
                    "Skipping reminders of calendar event %s with invalid recurrence rule %s",
                    event.id,
                    event.recurrence_rule,
                )
                continue

            for occurrence in occurrences:
                if not occurrence.start_time - reminder_delta <= now < occurrence.start_time:
                    continue
                occurrence_start_time = occurrence.original_start_time or occurrence.start_time
                for user_id in involved_user_ids:
                    if (event.id, user_id, occurrence_start_time) in delivered:
                        continue
                    reminders.append(
                        self._build_reminder(user_id, occurrence, minutes_before)
                    )

        logger.info("Calendar reminder evaluation produced %s reminder(s)", len(reminders))
        return reminders

    def send_due_reminders(
        self, now: datetime.datetime | None = None
    ) -> list[ReminderNotificationData]:
        """Record and dispatch the reminders due at ``now``."""
        reminders = self.get_due_reminders(now)
        if not reminders:
            return reminders

        with transaction.atomic():
            CalendarReminderDelivery.objects.bulk_create(
                [
                    CalendarReminderDelivery(
                        event_id=reminder.event_id,
                        user_id=reminder.user_id,
                        occurrence_start_time=reminder.occurrence_start_time,
                    )
                    for reminder in reminders
                ],
                ignore_conflicts=True,
            )

        for reminder in reminders:
            self.notification_dispatcher.dispatch(reminder)
        return reminders

    @staticmethod
    def _build_reminder(
        user_id: int, occurrence: CalendarEventOccurrenceData, minutes_before: int
    ) -> ReminderNotificationData:
        start_time = occurrence.start_time.astimezone(datetime.UTC)
        return ReminderNotificationData(
            user_id=user_id,
            event_id=occurrence.event_id,  # type: ignore[arg-type]
            title=f"{REMINDER_TITLE_PREFIX}: {occurrence.title}",
            body=f"Starts at {start_time:%H:%M} UTC on {start_time:%Y-%m-%d}",
            start_time=occurrence.start_time,
            occurrence_start_time=occurrence.original_start_time or occurrence.start_time,
            minutes_before=minutes_before,
        )
