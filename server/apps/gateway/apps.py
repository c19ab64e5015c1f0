"""Django app configuration for gateway app."""

from typing import override

from django.apps import AppConfig

from server.apps.gateway.logic.upload_gateway import UploadGateway


class GatewayConfig(AppConfig):
    """Configuration for gateway app.

    Owns the process-wide upload gateway and its ticket registry.
    """

    name = 'server.apps.gateway'
    verbose_name = 'Upload gateway'

    gateway: UploadGateway

    @override
    def ready(self) -> None:
        """Build the gateway and register the download name resolver."""
        from server.apps.files.logic.record_operations import (  # noqa: PLC0415
            resolve_display_name,
        )

        self.gateway = UploadGateway.from_settings()
        self.gateway.set_resolver(resolve_display_name)
