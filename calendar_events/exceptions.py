class CalendarEventsError(Exception):
    """Base exception for calendar events errors"""

    default_message = ""

    def __init__(self, message: str | None = None):
        if message is None:
            message = self.default_message
        super().__init__(message)


class CalendarEventNotFoundError(CalendarEventsError):
    default_message = "Calendar event not found."


class MissingOccurrenceStartError(CalendarEventsError):
    """Raised when a single-occurrence or this-and-future change has no occurrence start"""

    default_message = (
        "`occurrence_start_time` is required to change a single occurrence "
        "or the following occurrences of a recurring event."
    )


class RecurrenceRuleParseError(CalendarEventsError):
    default_message = "Invalid recurrence rule."


class CalendarEventPersistenceError(CalendarEventsError):
    """Raised when a multi-record calendar change could not be committed"""

    default_message = "Could not save the calendar event changes. No changes were applied."


class ExternalCalendarSubscriptionNotFoundError(CalendarEventsError):
    default_message = "External calendar subscription not found."


class ExternalCalendarSubscriptionLimitError(CalendarEventsError):
    default_message = "Maximum number of external calendar subscriptions reached."
