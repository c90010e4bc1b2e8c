import datetime

from django.conf import settings

from celery.schedules import crontab  # type: ignore


def get_celerybeat_schedule() -> dict:
    return {
        # Internal tasks
        "clearsessions": {
            "schedule": crontab(hour=3, minute=0),
            "task": "users.tasks.clearsessions",
        },
        "send_calendar_reminders": {
            "schedule": datetime.timedelta(minutes=settings.CALENDAR_REMINDER_POLL_MINUTES),
            "task": "calendar_events.tasks.send_calendar_reminders_task",
        },
    }
