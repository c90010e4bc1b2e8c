from django_filters import rest_framework as filters

from calendar_events.models import CalendarEvent


class CalendarEventFilterSet(filters.FilterSet):
    """
    FilterSet for CalendarEvent model. Filters series, not occurrences.
    """

    start_time = filters.DateTimeFilter(
        field_name="start_time",
        lookup_expr="gte",
        label="Start time (greater than or equal to)",
    )
    end_time = filters.DateTimeFilter(
        field_name="end_time",
        lookup_expr="lte",
        label="End time (less than or equal to)",
    )
    title = filters.CharFilter(
        field_name="title",
        lookup_expr="icontains",
        label="Filter by partial title match",
    )
    user = filters.NumberFilter(
        field_name="members__user_id",
        distinct=True,
        label="Filter by member user ID",
    )
    is_recurring = filters.BooleanFilter(
        method="filter_is_recurring",
        label="Filter recurring or single events",
    )

    class Meta:
        model = CalendarEvent
        fields = (
            "start_time",
            "end_time",
            "title",
            "user",
            "is_recurring",
        )

    def filter_is_recurring(self, queryset, name, value):
        if value is None:
            return queryset
        return queryset.filter_recurring() if value else queryset.filter_non_recurring()
