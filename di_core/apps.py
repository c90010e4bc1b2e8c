import logging

from django.apps import AppConfig
from django.conf import settings


logger = logging.getLogger(__name__)


class DICoreConfig(AppConfig):
    name = "di_core"
    verbose_name = "Dependency Injection"

    def ready(self) -> None:
        from di_core import containers

        container = containers.AppContainer()
        # Providers read CALENDAR_* and other settings through `config`
        container.config.from_dict(settings.__dict__["_wrapped"].__dict__)

        internal_apps = getattr(settings, "INTERNAL_INSTALLED_APPS", [])
        container.wire(packages=internal_apps)
        logger.debug("Wired the app container into %s", ", ".join(internal_apps))

        containers.container = container
