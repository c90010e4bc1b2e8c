import datetime
from typing import TYPE_CHECKING, Annotated

from django.conf import settings
from django.core.validators import URLValidator

from dependency_injector.wiring import Provide, inject
from rest_framework import serializers

from calendar_events.constants import ParticipationType, RecurrenceEditScope
from calendar_events.exceptions import RecurrenceRuleParseError
from calendar_events.models import (
    CalendarEvent,
    CalendarEventException,
    CalendarEventMember,
    ExternalCalendarSubscription,
)
from calendar_events.recurrence_utils import RecurrenceRuleEvaluator
from calendar_events.services.dataclasses import (
    CalendarEventInputData,
    CalendarEventMemberInputData,
    ExternalCalendarSubscriptionInputData,
    FindSlotsInputData,
)
from users.models import User


if TYPE_CHECKING:
    from calendar_events.services.calendar_event_service import CalendarEventService
    from calendar_events.services.external_calendar_subscription_service import (
        ExternalCalendarSubscriptionService,
    )


MAX_DESCRIPTION_LENGTH = 5000
MAX_SLOT_DURATION_MINUTES = 1440
MIN_SYNC_INTERVAL_MINUTES = 15
MAX_SYNC_INTERVAL_MINUTES = 1440
ICS_URL_SCHEMES = ["http", "https", "webcal"]


class CalendarEventMemberSerializer(serializers.ModelSerializer):
    user_id = serializers.PrimaryKeyRelatedField(source="user", queryset=User.objects.all())
    user_display_name = serializers.SerializerMethodField()

    class Meta:
        model = CalendarEventMember
        fields = ("user_id", "participation_type", "user_display_name")

    def get_user_display_name(self, obj: CalendarEventMember) -> str:
        return obj.user.display_name


class CalendarEventExceptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = CalendarEventException
        fields = (
            "id",
            "original_start_time",
            "is_deleted",
            "override_title",
            "override_description",
            "override_location",
            "override_start_time",
            "override_end_time",
            "override_is_all_day",
        )
        read_only_fields = fields


class CalendarEventSerializer(serializers.ModelSerializer):
    description = serializers.CharField(
        max_length=MAX_DESCRIPTION_LENGTH, allow_blank=True, required=False
    )
    recurrence_rule = serializers.CharField(
        max_length=500,
        allow_blank=True,
        required=False,
        help_text="RRULE body, e.g. FREQ=WEEKLY;BYDAY=MO,WE. Empty for single events.",
    )
    members = CalendarEventMemberSerializer(many=True, required=False)
    exceptions = CalendarEventExceptionSerializer(many=True, read_only=True)
    is_recurring = serializers.BooleanField(read_only=True)
    edit_scope = serializers.ChoiceField(
        choices=RecurrenceEditScope.choices,
        required=False,
        allow_null=True,
        write_only=True,
        help_text="Which occurrences of a recurring event are updated, defaults to the entire series",
    )
    occurrence_start_time = serializers.DateTimeField(
        required=False,
        allow_null=True,
        write_only=True,
        help_text="Original start time of the edited occurrence",
    )

    class Meta:
        model = CalendarEvent
        fields = (
            "id",
            "title",
            "description",
            "location",
            "color",
            "start_time",
            "end_time",
            "is_all_day",
            "recurrence_rule",
            "recurrence_end",
            "reminder_minutes_before",
            "is_recurring",
            "created_by",
            "split_from",
            "members",
            "exceptions",
            "created",
            "modified",
            "edit_scope",
            "occurrence_start_time",
        )
        read_only_fields = ("id", "created_by", "split_from", "created", "modified")

    @inject
    def __init__(
        self,
        *args,
        calendar_event_service: Annotated[
            "CalendarEventService | None", Provide["calendar_event_service"]
        ] = None,
        recurrence_rule_evaluator: Annotated[
            RecurrenceRuleEvaluator | None, Provide["recurrence_rule_evaluator"]
        ] = None,
        **kwargs,
    ):
        self.calendar_event_service = calendar_event_service
        self.recurrence_rule_evaluator = recurrence_rule_evaluator or RecurrenceRuleEvaluator()
        super().__init__(*args, **kwargs)

    def validate_members(self, members):
        user_ids = [member["user"].id for member in members]
        if len(user_ids) != len(set(user_ids)):
            raise serializers.ValidationError("A user can only be listed once.")
        return members

    def _get_value(self, attrs: dict, field_name: str):
        if field_name in attrs:
            return attrs[field_name]
        return getattr(self.instance, field_name, None)

    def validate(self, attrs):
        start_time = self._get_value(attrs, "start_time")
        end_time = self._get_value(attrs, "end_time")
        if start_time and end_time and end_time <= start_time:
            raise serializers.ValidationError({"end_time": "End time must be after start time."})

        recurrence_rule = attrs.get("recurrence_rule")
        if recurrence_rule:
            try:
                self.recurrence_rule_evaluator.validate(recurrence_rule, start_time)
            except RecurrenceRuleParseError as e:
                raise serializers.ValidationError({"recurrence_rule": str(e)}) from e

        recurrence_end = attrs.get("recurrence_end")
        if recurrence_end and start_time and recurrence_end <= start_time:
            raise serializers.ValidationError(
                {"recurrence_end": "Recurrence end must be after start time."}
            )

        # Occurrence times can't fall back to the series' first occurrence.
        if (
            self.instance is not None
            and self.instance.is_recurring
            and attrs.get("edit_scope")
            in (RecurrenceEditScope.THIS_OCCURRENCE, RecurrenceEditScope.THIS_AND_FUTURE)
            and ("start_time" not in attrs or "end_time" not in attrs)
        ):
            raise serializers.ValidationError(
                "start_time and end_time of the edited occurrence are required."
            )

        if self.instance is None and not attrs.get("members"):
            raise serializers.ValidationError({"members": "At least one member is required."})

        return attrs

    def _build_input_data(self, validated_data: dict) -> CalendarEventInputData:
        members = validated_data.get("members")
        return CalendarEventInputData(
            title=self._get_value(validated_data, "title"),
            description=self._get_value(validated_data, "description") or "",
            location=self._get_value(validated_data, "location") or "",
            color=self._get_value(validated_data, "color") or "",
            start_time=self._get_value(validated_data, "start_time"),
            end_time=self._get_value(validated_data, "end_time"),
            is_all_day=bool(self._get_value(validated_data, "is_all_day")),
            # None keeps the current rule on updates
            recurrence_rule=validated_data.get("recurrence_rule"),
            recurrence_end=validated_data.get("recurrence_end"),
            reminder_minutes_before=self._get_value(validated_data, "reminder_minutes_before"),
            members=(
                [
                    CalendarEventMemberInputData(
                        user_id=member["user"].id,
                        participation_type=member.get(
                            "participation_type", ParticipationType.INVOLVED
                        ),
                    )
                    for member in members
                ]
                if members is not None
                else None
            ),
        )

    def _get_service(self) -> "CalendarEventService":
        if not self.calendar_event_service:
            raise ValueError(
                "calendar_event_service is not defined, please configure your DI container correctly"
            )
        return self.calendar_event_service

    def create(self, validated_data: dict) -> CalendarEvent:
        user = self.context["request"].user if self.context.get("request") else None
        return self._get_service().create_event(
            self._build_input_data(validated_data),
            created_by=user if user and user.is_authenticated else None,
        )

    def update(self, instance: CalendarEvent, validated_data: dict) -> CalendarEvent:
        return self._get_service().update_event(
            event_id=instance.id,
            event_data=self._build_input_data(validated_data),
            scope=validated_data.get("edit_scope"),
            occurrence_start_time=validated_data.get("occurrence_start_time"),
        )


class CalendarEventDeleteQuerySerializer(serializers.Serializer):
    edit_scope = serializers.ChoiceField(
        choices=RecurrenceEditScope.choices, required=False, allow_null=True
    )
    occurrence_start_time = serializers.DateTimeField(required=False, allow_null=True)


class CalendarEventOccurrenceSerializer(serializers.Serializer):
    event_id = serializers.IntegerField(allow_null=True)
    title = serializers.CharField()
    description = serializers.CharField()
    location = serializers.CharField()
    color = serializers.CharField()
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    is_all_day = serializers.BooleanField()
    original_start_time = serializers.DateTimeField(allow_null=True)
    is_recurring = serializers.BooleanField()
    is_external = serializers.BooleanField()
    subscription_id = serializers.IntegerField(allow_null=True)
    owner_display_name = serializers.CharField(allow_null=True)


class TimeRangeQuerySerializer(serializers.Serializer):
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()

    def validate(self, attrs):
        if attrs["end_time"] <= attrs["start_time"]:
            raise serializers.ValidationError({"end_time": "End time must be after start time."})
        return attrs


class OccurrencesQuerySerializer(TimeRangeQuerySerializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(), required=False)
    include_external_events = serializers.BooleanField(required=False, default=False)


class UpcomingOccurrencesQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, min_value=1, max_value=365)
    user_id = serializers.IntegerField(required=False)


class TimeSlotSerializer(serializers.Serializer):
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    title = serializers.CharField(allow_null=True, required=False)


class FreeBusySerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    user_display_name = serializers.CharField()
    busy_slots = TimeSlotSerializer(many=True)


class FreeBusyRequestSerializer(TimeRangeQuerySerializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class FindSlotsRequestSerializer(FreeBusyRequestSerializer):
    duration_minutes = serializers.IntegerField(min_value=1, max_value=MAX_SLOT_DURATION_MINUTES)
    preferred_start_hour = serializers.IntegerField(
        min_value=0, max_value=23, required=False, allow_null=True
    )
    preferred_end_hour = serializers.IntegerField(
        min_value=0, max_value=23, required=False, allow_null=True
    )
    timezone = serializers.CharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        help_text="IANA timezone of the preferred hours, UTC when empty",
    )
    max_results = serializers.IntegerField(required=False, min_value=1)

    def validate_max_results(self, max_results):
        if max_results > settings.CALENDAR_FIND_SLOTS_MAX_RESULTS:
            raise serializers.ValidationError(
                f"Ensure this value is less than or equal to "
                f"{settings.CALENDAR_FIND_SLOTS_MAX_RESULTS}."
            )
        return max_results

    def validate(self, attrs):
        attrs = super().validate(attrs)
        max_range_days = settings.CALENDAR_FIND_SLOTS_MAX_RANGE_DAYS
        if attrs["end_time"] - attrs["start_time"] > datetime.timedelta(days=max_range_days):
            raise serializers.ValidationError(
                {"end_time": f"Search range cannot exceed {max_range_days} days."}
            )

        preferred_start_hour = attrs.get("preferred_start_hour")
        preferred_end_hour = attrs.get("preferred_end_hour")
        if (
            preferred_start_hour is not None
            and preferred_end_hour is not None
            and preferred_start_hour >= preferred_end_hour
        ):
            raise serializers.ValidationError(
                {"preferred_end_hour": "Preferred end hour must be after preferred start hour."}
            )
        return attrs

    def to_input_data(self) -> FindSlotsInputData:
        return FindSlotsInputData(
            user_ids=self.validated_data["user_ids"],
            start_time=self.validated_data["start_time"],
            end_time=self.validated_data["end_time"],
            duration_minutes=self.validated_data["duration_minutes"],
            max_results=self.validated_data.get("max_results")
            or settings.CALENDAR_FIND_SLOTS_DEFAULT_RESULTS,
            preferred_start_hour=self.validated_data.get("preferred_start_hour"),
            preferred_end_hour=self.validated_data.get("preferred_end_hour"),
            timezone=self.validated_data.get("timezone") or None,
        )


class ExternalCalendarSubscriptionSerializer(serializers.ModelSerializer):
    ics_url = serializers.CharField(
        max_length=2000,
        validators=[URLValidator(schemes=ICS_URL_SCHEMES)],
        help_text="ICS feed URL, webcal:// links are stored as https://",
    )
    sync_interval_minutes = serializers.IntegerField(
        min_value=MIN_SYNC_INTERVAL_MINUTES,
        max_value=MAX_SYNC_INTERVAL_MINUTES,
        required=False,
        default=60,
    )
    event_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = ExternalCalendarSubscription
        fields = (
            "id",
            "name",
            "ics_url",
            "color",
            "sync_interval_minutes",
            "is_active",
            "last_synced_at",
            "last_sync_status",
            "event_count",
            "created",
            "modified",
        )
        read_only_fields = (
            "id",
            "last_synced_at",
            "last_sync_status",
            "created",
            "modified",
        )

    @inject
    def __init__(
        self,
        *args,
        external_calendar_subscription_service: Annotated[
            "ExternalCalendarSubscriptionService | None",
            Provide["external_calendar_subscription_service"],
        ] = None,
        **kwargs,
    ):
        self.external_calendar_subscription_service = external_calendar_subscription_service
        super().__init__(*args, **kwargs)

    def _get_value(self, attrs: dict, field_name: str):
        if field_name in attrs:
            return attrs[field_name]
        return getattr(self.instance, field_name, None)

    def _build_input_data(self, validated_data: dict) -> ExternalCalendarSubscriptionInputData:
        is_active = self._get_value(validated_data, "is_active")
        return ExternalCalendarSubscriptionInputData(
            name=self._get_value(validated_data, "name"),
            ics_url=self._get_value(validated_data, "ics_url"),
            color=self._get_value(validated_data, "color") or "",
            sync_interval_minutes=self._get_value(validated_data, "sync_interval_minutes"),
            is_active=True if is_active is None else is_active,
        )

    def _get_service(self) -> "ExternalCalendarSubscriptionService":
        if not self.external_calendar_subscription_service:
            raise ValueError(
                "external_calendar_subscription_service is not defined, "
                "please configure your DI container correctly"
            )
        return self.external_calendar_subscription_service

    def create(self, validated_data: dict) -> ExternalCalendarSubscription:
        return self._get_service().create_subscription(
            self._build_input_data(validated_data),
            user_id=self.context["request"].user.id,
        )

    def update(
        self, instance: ExternalCalendarSubscription, validated_data: dict
    ) -> ExternalCalendarSubscription:
        return self._get_service().update_subscription(
            subscription_id=instance.id,
            subscription_data=self._build_input_data(validated_data),
            user_id=self.context["request"].user.id,
        )
