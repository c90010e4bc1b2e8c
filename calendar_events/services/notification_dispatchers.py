import logging

from calendar_events.services.dataclasses import ReminderNotificationData


logger = logging.getLogger(__name__)


class LoggingNotificationDispatcher:
    """Default dispatcher, only logs reminders. Delivery channels are plugged in the DI container."""

    def dispatch(self, reminder: ReminderNotificationData) -> None:
        logger.info(
            "Calendar reminder for user %s: %s (%s)",
            reminder.user_id,
            reminder.title,
            reminder.body,
        )
