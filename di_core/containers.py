from dependency_injector import containers, providers

from calendar_events.occurrence_utils import OccurrenceExpander
from calendar_events.recurrence_utils import RecurrenceRuleEvaluator
from calendar_events.services.calendar_availability_service import CalendarAvailabilityService
from calendar_events.services.calendar_event_service import CalendarEventService
from calendar_events.services.calendar_reminder_service import CalendarReminderService
from calendar_events.services.external_calendar_subscription_service import (
    ExternalCalendarSubscriptionService,
)
from calendar_events.services.notification_dispatchers import LoggingNotificationDispatcher
from users.services import UserDirectoryService


class AppContainer(containers.DeclarativeContainer):
    config = providers.Configuration()

    recurrence_rule_evaluator = providers.Factory(
        RecurrenceRuleEvaluator,
    )

    occurrence_expander = providers.Factory(
        OccurrenceExpander,
        recurrence_rule_evaluator=recurrence_rule_evaluator,
    )

    user_directory_service = providers.Factory(
        UserDirectoryService,
    )

    calendar_event_service = providers.Factory(
        CalendarEventService,
        occurrence_expander=occurrence_expander,
        recurrence_rule_evaluator=recurrence_rule_evaluator,
        user_directory_service=user_directory_service,
    )

    calendar_availability_service = providers.Factory(
        CalendarAvailabilityService,
        occurrence_expander=occurrence_expander,
        user_directory_service=user_directory_service,
        max_workers=config.CALENDAR_AVAILABILITY_MAX_WORKERS,
    )

    notification_dispatcher = providers.Singleton(
        LoggingNotificationDispatcher,
    )

    calendar_reminder_service = providers.Factory(
        CalendarReminderService,
        occurrence_expander=occurrence_expander,
        notification_dispatcher=notification_dispatcher,
        poll_interval_minutes=config.CALENDAR_REMINDER_POLL_MINUTES,
    )

    external_calendar_subscription_service = providers.Factory(
        ExternalCalendarSubscriptionService,
        max_subscriptions_per_user=config.CALENDAR_MAX_EXTERNAL_CALENDARS_PER_USER,
    )


container: AppContainer | None = None  # set during app startup
