import logging

from django.core import management

from home_management import celery_app


logger = logging.getLogger(__name__)


@celery_app.task
def clearsessions():
    """Remove expired login sessions. Scheduled daily, see `home_management.celerybeat_schedule`."""
    logger.info("Clearing expired sessions")
    management.call_command("clearsessions")
