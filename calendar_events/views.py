from typing import Annotated

from django.conf import settings
from django.http import Http404

from dependency_injector.wiring import Provide, inject
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response

from calendar_events.exceptions import (
    CalendarEventNotFoundError,
    CalendarEventPersistenceError,
    ExternalCalendarSubscriptionLimitError,
    ExternalCalendarSubscriptionNotFoundError,
    MissingOccurrenceStartError,
    RecurrenceRuleParseError,
)
from calendar_events.filtersets import CalendarEventFilterSet
from calendar_events.models import CalendarEvent, ExternalCalendarSubscription
from calendar_events.serializers import (
    CalendarEventDeleteQuerySerializer,
    CalendarEventOccurrenceSerializer,
    CalendarEventSerializer,
    ExternalCalendarSubscriptionSerializer,
    FindSlotsRequestSerializer,
    FreeBusyRequestSerializer,
    FreeBusySerializer,
    OccurrencesQuerySerializer,
    TimeSlotSerializer,
    UpcomingOccurrencesQuerySerializer,
)
from calendar_events.services.calendar_availability_service import CalendarAvailabilityService
from calendar_events.services.calendar_event_service import CalendarEventService
from calendar_events.services.external_calendar_subscription_service import (
    ExternalCalendarSubscriptionService,
)
from common.utils.view_utils import HomeManagementModelViewSet


class CalendarEventPersistenceAPIError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "The calendar could not be saved, please try again."
    default_code = "calendar_persistence_error"


def _raise_api_error(error: Exception):
    if isinstance(error, (CalendarEventNotFoundError, ExternalCalendarSubscriptionNotFoundError)):
        raise Http404(str(error)) from error
    if isinstance(
        error,
        (
            MissingOccurrenceStartError,
            RecurrenceRuleParseError,
            ExternalCalendarSubscriptionLimitError,
        ),
    ):
        raise ValidationError({"non_field_errors": [str(error)]}) from error
    if isinstance(error, CalendarEventPersistenceError):
        raise CalendarEventPersistenceAPIError() from error
    raise error


_TIME_RANGE_PARAMETERS = [
    OpenApiParameter(
        name="start_time",
        type=str,
        location=OpenApiParameter.QUERY,
        description="Window start in ISO format (YYYY-MM-DDTHH:MM:SSZ), inclusive",
        required=True,
    ),
    OpenApiParameter(
        name="end_time",
        type=str,
        location=OpenApiParameter.QUERY,
        description="Window end in ISO format (YYYY-MM-DDTHH:MM:SSZ), exclusive",
        required=True,
    ),
]


class CalendarEventViewSet(HomeManagementModelViewSet):
    """
    ViewSet for managing calendar events and listing their occurrences.
    """

    filterset_class = CalendarEventFilterSet
    queryset = CalendarEvent.objects.all()
    serializer_class = CalendarEventSerializer

    def get_queryset(self):
        return super().get_queryset().prefetch_occurrence_data()

    def perform_create(self, serializer):
        try:
            serializer.save()
        except (RecurrenceRuleParseError, CalendarEventPersistenceError) as e:
            _raise_api_error(e)

    def perform_update(self, serializer):
        try:
            serializer.save()
        except (
            CalendarEventNotFoundError,
            MissingOccurrenceStartError,
            RecurrenceRuleParseError,
            CalendarEventPersistenceError,
        ) as e:
            _raise_api_error(e)

    @extend_schema(
        summary="Delete calendar event",
        description=(
            "Delete a calendar event. For recurring events, `edit_scope` selects a single "
            "occurrence, an occurrence and the following ones, or the entire series."
        ),
        parameters=[
            OpenApiParameter(
                name="edit_scope",
                type=str,
                location=OpenApiParameter.QUERY,
                description="this_occurrence, this_and_future or entire_series",
                required=False,
            ),
            OpenApiParameter(
                name="occurrence_start_time",
                type=str,
                location=OpenApiParameter.QUERY,
                description="Original start time of the deleted occurrence",
                required=False,
            ),
        ],
        responses={204: None},
    )
    @inject
    def destroy(
        self,
        request,
        *args,
        calendar_event_service: Annotated[
            CalendarEventService, Provide["calendar_event_service"]
        ],
        **kwargs,
    ):
        instance = self.get_object()
        query_serializer = CalendarEventDeleteQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        try:
            calendar_event_service.delete_event(
                event_id=instance.id,
                scope=query_serializer.validated_data.get("edit_scope"),
                occurrence_start_time=query_serializer.validated_data.get(
                    "occurrence_start_time"
                ),
            )
        except (
            CalendarEventNotFoundError,
            MissingOccurrenceStartError,
            CalendarEventPersistenceError,
        ) as e:
            _raise_api_error(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary="List event occurrences",
        description=(
            "Expand recurring events into the occurrences overlapping a time window, "
            "applying edited and deleted occurrences."
        ),
        parameters=[
            *_TIME_RANGE_PARAMETERS,
            OpenApiParameter(
                name="user_ids",
                type=int,
                many=True,
                location=OpenApiParameter.QUERY,
                description="Only events having one of these users as member",
                required=False,
            ),
            OpenApiParameter(
                name="include_external_events",
                type=bool,
                location=OpenApiParameter.QUERY,
                description="Include events of subscribed external calendars",
                required=False,
            ),
        ],
        responses={200: CalendarEventOccurrenceSerializer(many=True)},
    )
    @action(
        methods=["GET"],
        detail=False,
        url_path="occurrences",
        url_name="occurrences",
    )
    @inject
    def occurrences(
        self,
        request,
        calendar_event_service: Annotated[
            CalendarEventService, Provide["calendar_event_service"]
        ],
    ):
        query_serializer = OccurrencesQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        occurrences = calendar_event_service.get_occurrences(
            start_time=query_serializer.validated_data["start_time"],
            end_time=query_serializer.validated_data["end_time"],
            user_ids=query_serializer.validated_data.get("user_ids"),
            include_external_events=query_serializer.validated_data["include_external_events"],
        )
        return Response(CalendarEventOccurrenceSerializer(occurrences, many=True).data)

    @extend_schema(
        summary="List upcoming occurrences",
        description="List the occurrences starting from now over the next days.",
        parameters=[
            OpenApiParameter(
                name="days",
                type=int,
                location=OpenApiParameter.QUERY,
                description="Number of days to look ahead",
                required=False,
            ),
            OpenApiParameter(
                name="user_id",
                type=int,
                location=OpenApiParameter.QUERY,
                description="Only events having this user as member",
                required=False,
            ),
        ],
        responses={200: CalendarEventOccurrenceSerializer(many=True)},
    )
    @action(
        methods=["GET"],
        detail=False,
        url_path="upcoming",
        url_name="upcoming",
    )
    @inject
    def upcoming(
        self,
        request,
        calendar_event_service: Annotated[
            CalendarEventService, Provide["calendar_event_service"]
        ],
    ):
        query_serializer = UpcomingOccurrencesQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        occurrences = calendar_event_service.get_upcoming_occurrences(
            days=query_serializer.validated_data.get("days")
            or settings.CALENDAR_UPCOMING_DEFAULT_DAYS,
            user_id=query_serializer.validated_data.get("user_id"),
        )
        return Response(CalendarEventOccurrenceSerializer(occurrences, many=True).data)


class CalendarAvailabilityViewSet(viewsets.ViewSet):
    """
    ViewSet for querying busy times and finding free slots shared by household members.
    """

    @extend_schema(
        summary="Get busy times",
        description="Get the merged busy times of each user within a time window.",
        request=FreeBusyRequestSerializer,
        responses={200: FreeBusySerializer(many=True)},
    )
    @action(
        methods=["POST"],
        detail=False,
        url_path="free-busy",
        url_name="free-busy",
    )
    @inject
    def free_busy(
        self,
        request,
        calendar_availability_service: Annotated[
            CalendarAvailabilityService, Provide["calendar_availability_service"]
        ],
    ):
        serializer = FreeBusyRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        free_busy = calendar_availability_service.get_free_busy(
            user_ids=serializer.validated_data["user_ids"],
            start_time=serializer.validated_data["start_time"],
            end_time=serializer.validated_data["end_time"],
        )
        return Response(FreeBusySerializer(free_busy, many=True).data)

    @extend_schema(
        summary="Find available slots",
        description=(
            "Find slots of the requested duration when all the users are free, "
            "optionally limited to preferred hours of a timezone."
        ),
        request=FindSlotsRequestSerializer,
        responses={200: TimeSlotSerializer(many=True)},
    )
    @action(
        methods=["POST"],
        detail=False,
        url_path="find-slots",
        url_name="find-slots",
    )
    @inject
    def find_slots(
        self,
        request,
        calendar_availability_service: Annotated[
            CalendarAvailabilityService, Provide["calendar_availability_service"]
        ],
    ):
        serializer = FindSlotsRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        slots = calendar_availability_service.find_available_slots(serializer.to_input_data())
        return Response(TimeSlotSerializer(slots, many=True).data)


class ExternalCalendarSubscriptionViewSet(HomeManagementModelViewSet):
    """
    ViewSet for managing the external calendars of the authenticated user.
    Events imported from them are counted as busy time.
    """

    queryset = ExternalCalendarSubscription.objects.all()
    serializer_class = ExternalCalendarSubscriptionSerializer

    @inject
    def get_queryset(
        self,
        external_calendar_subscription_service: Annotated[
            ExternalCalendarSubscriptionService, Provide["external_calendar_subscription_service"]
        ],
    ):
        user = self.request.user
        if not user.is_authenticated:
            return ExternalCalendarSubscription.objects.none()
        return external_calendar_subscription_service.get_subscriptions(user.id)

    def perform_create(self, serializer):
        try:
            serializer.save()
        except ExternalCalendarSubscriptionLimitError as e:
            _raise_api_error(e)

    def perform_update(self, serializer):
        try:
            serializer.save()
        except ExternalCalendarSubscriptionNotFoundError as e:
            _raise_api_error(e)

    @inject
    def perform_destroy(
        self,
        instance,
        external_calendar_subscription_service: Annotated[
            ExternalCalendarSubscriptionService, Provide["external_calendar_subscription_service"]
        ],
    ):
        try:
            external_calendar_subscription_service.delete_subscription(
                instance.id, self.request.user.id
            )
        except ExternalCalendarSubscriptionNotFoundError as e:
            _raise_api_error(e)
