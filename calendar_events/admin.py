from django.contrib import admin

from calendar_events.models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
    CalendarReminderDelivery,
    ExternalCalendarEvent,
    ExternalCalendarSubscription,
)


class CalendarEventMemberInline(admin.TabularInline):
    model = CalendarEventMember
    fields = ("user", "participation_type")
    raw_id_fields = ("user",)
    extra = 0


class CalendarEventExceptionInline(admin.TabularInline):
    """Edited and deleted occurrences of the series."""

    model = CalendarEventException
    fields = (
        "original_start_time",
        "is_deleted",
        "override_title",
        "override_start_time",
        "override_end_time",
    )
    extra = 0


@admin.register(CalendarEvent)
class CalendarEventAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "title",
        "start_time",
        "end_time",
        "recurrence_rule",
        "recurrence_end",
        "created_by",
        "created",
    )
    list_filter = ("is_all_day", "start_time")
    search_fields = ("title", "description", "location")
    raw_id_fields = ("created_by", "split_from")
    readonly_fields = ("created", "modified")
    inlines = (CalendarEventMemberInline, CalendarEventExceptionInline)
    date_hierarchy = "start_time"


class ExternalCalendarEventInline(admin.TabularInline):
    model = ExternalCalendarEvent
    fields = ("title", "start_time", "end_time", "is_all_day")
    readonly_fields = fields
    extra = 0
    max_num = 20


@admin.register(ExternalCalendarSubscription)
class ExternalCalendarSubscriptionAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "user", "is_active", "last_synced_at", "last_sync_status")
    list_filter = ("is_active", "last_sync_status")
    search_fields = ("name", "user__email")
    raw_id_fields = ("user",)
    inlines = (ExternalCalendarEventInline,)


@admin.register(CalendarReminderDelivery)
class CalendarReminderDeliveryAdmin(admin.ModelAdmin):
    list_display = ("id", "event", "user", "occurrence_start_time", "created")
    search_fields = ("event__title", "user__email")
    raw_id_fields = ("event", "user")
