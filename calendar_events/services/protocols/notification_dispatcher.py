from typing import Protocol

from calendar_events.services.dataclasses import ReminderNotificationData


class NotificationDispatcher(Protocol):
    def dispatch(self, reminder: ReminderNotificationData) -> None:
        """
        Deliver a reminder to its user.
        :param reminder: the reminder to deliver.
        """
        ...
