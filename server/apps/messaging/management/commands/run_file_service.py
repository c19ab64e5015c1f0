"""Django management command to run the file service."""

import logging
import os
import sys
import threading
from typing import Any, final, override

from cheroot.wsgi import Server as WSGIServer
from django.apps import apps
from django.conf import settings
from django.core.management.base import BaseCommand
from django.core.wsgi import get_wsgi_application

from server.apps.gateway.logic.upload_gateway import get_upload_gateway
from server.apps.messaging.consumer import RequestConsumer
from server.apps.messaging.dispatcher import MessageDispatcher

logger = logging.getLogger(__name__)

# Environment variable to indicate we're in a reload subprocess
_RELOAD_ENV_VAR = 'FILE_SERVICE_RELOAD_SUBPROCESS'


@final
class Command(BaseCommand):
    """Run the upload/download HTTP server and the broker consumer.

    The HTTP gateway (cheroot) and the RabbitMQ consumer share one
    process so they share the in-memory upload tickets.
    """

    help = 'Run the file service (HTTP gateway and RabbitMQ consumer)'

    @override
    def add_arguments(self, parser: Any) -> None:
        """Add command arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--host',
            type=str,
            default=None,
            help='Host to bind to (default: from settings)',
        )
        parser.add_argument(
            '--port',
            type=int,
            default=None,
            help='Port to bind to (default: from settings)',
        )
        parser.add_argument(
            '--no-broker',
            action='store_true',
            default=False,
            help='Serve HTTP only, without consuming from RabbitMQ',
        )
        parser.add_argument(
            '--reload',
            action='store_true',
            default=False,
            help='Enable auto-reload on code changes (development only)',
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the command.

        Args:
            args: Positional arguments.
            options: Keyword arguments from command line.
        """
        use_reload = options['reload']
        is_subprocess = os.environ.get(_RELOAD_ENV_VAR) == 'true'

        if use_reload and not is_subprocess:
            self._run_with_reload(options)
        else:
            self._run_service(options)

    def _run_service(self, options: dict[str, Any]) -> None:
        host = options['host'] or settings.UPLOAD_HOST
        port = options['port'] or settings.UPLOAD_PORT

        server = WSGIServer(
            bind_addr=(host, port),
            wsgi_app=get_wsgi_application(),
        )
        server.server_name = 'FileService'

        self.stdout.write(
            self.style.SUCCESS(f'Starting file service on {host}:{port}'),
        )
        logger.info('HTTP gateway starting on %s:%d', host, port)

        if options['no_broker']:
            self._serve_http_only(server)
            return

        consumer = self._build_consumer()
        http_thread = threading.Thread(
            target=server.safe_start,
            name='http-gateway',
            daemon=True,
        )
        http_thread.start()

        try:
            consumer.run()
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('\nShutting down...'))
        finally:
            consumer.stop()
            server.stop()
            http_thread.join()
            self.stdout.write(self.style.SUCCESS('File service stopped'))

    def _serve_http_only(self, server: WSGIServer) -> None:
        try:
            server.start()
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('\nShutting down...'))
        finally:
            server.stop()
            self.stdout.write(self.style.SUCCESS('File service stopped'))

    def _build_consumer(self) -> RequestConsumer:
        health = apps.get_app_config('messaging').health  # type: ignore[attr-defined]
        dispatcher = MessageDispatcher(
            get_upload_gateway(),
            tracker=health.tracker,
        )
        return RequestConsumer(
            dispatcher,
            url=settings.RABBITMQ_URL,
            exchange=settings.RABBITMQ_EXCHANGE,
            queue=settings.RABBITMQ_QUEUE,
            topics=settings.RABBITMQ_TOPICS,
            reconnect_delay=settings.RABBITMQ_RECONNECT_DELAY,
            health=health,
        )

    def _run_with_reload(self, options: dict[str, Any]) -> None:
        """Run the service with auto-reload on file changes.

        Uses watchfiles to monitor Python files and restart the
        service when changes are detected.

        Args:
            options: Command options.
        """
        try:
            import watchfiles  # noqa: PLC0415
        except ImportError:
            self.stderr.write(
                self.style.ERROR(
                    'watchfiles is required for --reload. '
                    'Install with: poetry add -G dev watchfiles',
                ),
            )
            sys.exit(1)

        self.stdout.write(
            self.style.SUCCESS('Starting file service with auto-reload...'),
        )

        cmd_parts = [sys.executable, '-m', 'django', 'run_file_service']
        if options['host']:
            cmd_parts.extend(['--host', options['host']])
        if options['port']:
            cmd_parts.extend(['--port', str(options['port'])])
        if options['no_broker']:
            cmd_parts.append('--no-broker')
        cmd = ' '.join(cmd_parts)

        def watch_filter(  # noqa: WPS430
            change: watchfiles.Change,
            path: str,
        ) -> bool:
            return path.endswith('.py')

        os.environ[_RELOAD_ENV_VAR] = 'true'

        watchfiles.run_process(
            str(settings.BASE_DIR / 'server'),
            target=cmd,
            target_type='command',
            watch_filter=watch_filter,
            callback=self._on_reload,
        )

    def _on_reload(self, changes: set[tuple[Any, str]]) -> None:
        for change_type, path in changes:
            self.stdout.write(
                self.style.WARNING(f'Detected {change_type.name}: {path}'),
            )
        self.stdout.write(self.style.SUCCESS('Reloading file service...'))
