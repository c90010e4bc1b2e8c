import datetime
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from calendar_events.constants import ExternalCalendarSyncStatus, ParticipationType
from calendar_events.managers import (
    CalendarEventManager,
    ExternalCalendarEventManager,
    ExternalCalendarSubscriptionManager,
)
from calendar_events.services.dataclasses import (
    DeletedOccurrence,
    OccurrenceOverride,
    OverriddenOccurrence,
)
from common.models import BaseModel


if TYPE_CHECKING:
    from django_stubs_ext.db.models.manager import RelatedManager


MAX_REMINDER_MINUTES_BEFORE = 10080  # one week


class CalendarEvent(BaseModel):
    """
    A single event or the definition of a recurring series.
    `start_time` and `end_time` belong to the first occurrence of the series.
    """

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    location = models.CharField(max_length=500, blank=True)
    color = models.CharField(max_length=50, blank=True)
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField(db_index=True)
    is_all_day = models.BooleanField(default=False)

    recurrence_rule = models.CharField(
        max_length=500,
        blank=True,
        help_text="RFC 5545 RRULE body, e.g. FREQ=WEEKLY;BYDAY=MO. Empty for single events.",
    )
    recurrence_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Occurrences starting after this instant do not exist",
    )
    reminder_minutes_before = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(MAX_REMINDER_MINUTES_BEFORE)],
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_calendar_events",
    )
    # Lineage only: set on the series created when "this and future" occurrences are edited.
    split_from = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="split_continuations",
        help_text="The series this one was split from",
    )

    members: "RelatedManager[CalendarEventMember]"
    exceptions: "RelatedManager[CalendarEventException]"
    split_continuations: "RelatedManager[CalendarEvent]"

    objects: CalendarEventManager = CalendarEventManager()

    class Meta:
        ordering = ("start_time", "id")

    def __str__(self):
        return f"{self.title} ({self.start_time} - {self.end_time})"

    def clean(self):
        super().clean()
        if self.start_time and self.end_time and self.end_time < self.start_time:
            raise ValidationError({"end_time": "End time must not be before start time."})

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule)

    @property
    def duration(self) -> datetime.timedelta:
        return self.end_time - self.start_time


class CalendarEventMember(BaseModel):
    event = models.ForeignKey(CalendarEvent, on_delete=models.CASCADE, related_name="members")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="calendar_event_memberships",
    )
    participation_type = models.CharField(
        max_length=20,
        choices=ParticipationType.choices,
        default=ParticipationType.INVOLVED,
        help_text="Involved members are busy during the event, aware members are only informed",
    )

    class Meta:
        constraints = (
            models.UniqueConstraint(
                fields=("event", "user"), name="unique_calendar_event_member_per_user"
            ),
        )

    def __str__(self):
        return f"{self.user_id} on {self.event_id} ({self.participation_type})"


class CalendarEventException(BaseModel):
    """
    A per-occurrence change of a recurring series, keyed by the occurrence's
    original start time.
    """

    event = models.ForeignKey(CalendarEvent, on_delete=models.CASCADE, related_name="exceptions")
    original_start_time = models.DateTimeField(
        help_text="The start time the rule generated for the occurrence being changed"
    )
    is_deleted = models.BooleanField(default=False)

    override_title = models.CharField(max_length=255, null=True, blank=True)
    override_description = models.TextField(null=True, blank=True)
    override_location = models.CharField(max_length=500, null=True, blank=True)
    override_start_time = models.DateTimeField(null=True, blank=True)
    override_end_time = models.DateTimeField(null=True, blank=True)
    override_is_all_day = models.BooleanField(null=True, blank=True)

    class Meta:
        constraints = (
            models.UniqueConstraint(
                fields=("event", "original_start_time"),
                name="unique_calendar_event_exception_per_occurrence",
            ),
        )

    def __str__(self):
        status = "deleted" if self.is_deleted else "modified"
        return f"Exception for {self.event_id} on {self.original_start_time} ({status})"

    def clear_overrides(self):
        self.override_title = None
        self.override_description = None
        self.override_location = None
        self.override_start_time = None
        self.override_end_time = None
        self.override_is_all_day = None

    def to_override(self) -> OccurrenceOverride:
        if self.is_deleted:
            return DeletedOccurrence(original_start_time=self.original_start_time)
        return OverriddenOccurrence(
            original_start_time=self.original_start_time,
            title=self.override_title,
            description=self.override_description,
            location=self.override_location,
            start_time=self.override_start_time,
            end_time=self.override_end_time,
            is_all_day=self.override_is_all_day,
        )


class ExternalCalendarSubscription(BaseModel):
    """
    An external calendar a user imports to be considered busy.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="external_calendar_subscriptions",
    )
    name = models.CharField(max_length=255)
    ics_url = models.URLField(max_length=2000)
    color = models.CharField(max_length=50, blank=True)
    sync_interval_minutes = models.PositiveIntegerField(default=60)
    last_synced_at = models.DateTimeField(null=True, blank=True)
    last_sync_status = models.CharField(
        max_length=20,
        choices=ExternalCalendarSyncStatus.choices,
        default=ExternalCalendarSyncStatus.NOT_STARTED,
    )
    is_active = models.BooleanField(default=True)

    objects: ExternalCalendarSubscriptionManager = ExternalCalendarSubscriptionManager()

    events: "RelatedManager[ExternalCalendarEvent]"

    def __str__(self):
        return self.name


class ExternalCalendarEvent(BaseModel):
    subscription = models.ForeignKey(
        ExternalCalendarSubscription, on_delete=models.CASCADE, related_name="events"
    )
    external_uid = models.CharField(max_length=500)
    title = models.CharField(max_length=255, blank=True)
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField(db_index=True)
    is_all_day = models.BooleanField(default=False)

    objects: ExternalCalendarEventManager = ExternalCalendarEventManager()

    class Meta:
        ordering = ("start_time", "id")
        constraints = (
            models.UniqueConstraint(
                fields=("subscription", "external_uid"),
                name="unique_external_calendar_event_uid",
            ),
        )

    def __str__(self):
        return f"{self.title} ({self.start_time} - {self.end_time})"


class CalendarReminderDelivery(BaseModel):
    """
    Records a reminder produced for an occurrence so it is not produced twice.
    """

    event = models.ForeignKey(
        CalendarEvent, on_delete=models.CASCADE, related_name="reminder_deliveries"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="calendar_reminder_deliveries",
    )
    occurrence_start_time = models.DateTimeField()

    class Meta:
        constraints = (
            models.UniqueConstraint(
                fields=("event", "user", "occurrence_start_time"),
                name="unique_calendar_reminder_delivery",
            ),
        )

    def __str__(self):
        return f"Reminder for {self.user_id} on {self.event_id} at {self.occurrence_start_time}"
