from typing import Annotated

from dependency_injector.wiring import Provide, inject

from calendar_events.services.calendar_reminder_service import CalendarReminderService
from home_management.celery import app


@app.task
@inject
def send_calendar_reminders_task(
    calendar_reminder_service: Annotated[
        CalendarReminderService, Provide["calendar_reminder_service"]
    ],
):
    """
    Celery task to send the calendar reminders due now.
    Runs periodically, see `home_management.celerybeat_schedule`.
    """
    reminders = calendar_reminder_service.send_due_reminders()
    return len(reminders)
