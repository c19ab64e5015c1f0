"""Django app configuration for messaging app."""

from typing import override

from django.apps import AppConfig
from django.conf import settings

from server.apps.messaging.health import HealthReporter, RequestTracker


class MessagingConfig(AppConfig):
    """Configuration for messaging app.

    Owns the process health reporter shared by the broker consumer and
    the ``/health`` endpoint.
    """

    name = 'server.apps.messaging'
    verbose_name = 'Messaging'

    health: HealthReporter

    @override
    def ready(self) -> None:
        """Create the health reporter."""
        self.health = HealthReporter(
            RequestTracker(settings.HEALTH_WINDOW_SIZE),
        )
