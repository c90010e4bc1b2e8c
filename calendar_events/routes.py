from common.types import RouteDict

from .views import (
    CalendarAvailabilityViewSet,
    CalendarEventViewSet,
    ExternalCalendarSubscriptionViewSet,
)


routes: list[RouteDict] = [
    {
        "regex": r"calendar-events",
        "viewset": CalendarEventViewSet,
        "basename": "CalendarEvents",
    },
    {
        "regex": r"calendar-availability",
        "viewset": CalendarAvailabilityViewSet,
        "basename": "CalendarAvailability",
    },
    {
        "regex": r"external-calendar-subscriptions",
        "viewset": ExternalCalendarSubscriptionViewSet,
        "basename": "ExternalCalendarSubscriptions",
    },
]
