import os

from django.apps import apps

from celery import Celery

from home_management.celerybeat_schedule import get_celerybeat_schedule


os.environ.setdefault("DJANGO_SETTINGS_MODULE", "home_management.settings.local_base")

app = Celery("home_management_tasks")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks(lambda: [n.name for n in apps.get_app_configs()])
app.conf.beat_schedule = get_celerybeat_schedule()
