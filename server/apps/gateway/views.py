"""HTTP endpoints for uploads, downloads and health."""

import logging
from http import HTTPStatus
from typing import Final

from django.apps import apps
from django.db import DatabaseError, connection
from django.http import (
    FileResponse,
    HttpRequest,
    HttpResponse,
    JsonResponse,
)
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods

from server.apps.files.exceptions import FileRecordError
from server.apps.gateway.logic.upload_gateway import get_upload_gateway
from server.apps.messaging.health import HealthStatus

logger = logging.getLogger(__name__)

_GENERIC_UPLOAD_ERROR: Final = 'failed to finalise upload'
_DATABASE_TRAIT: Final = 'database'


def _with_cors(response: HttpResponse) -> HttpResponse:
    # Uploads come straight from browsers on other origins
    response['Access-Control-Allow-Origin'] = '*'
    response['Access-Control-Allow-Methods'] = 'POST, OPTIONS'
    response['Access-Control-Allow-Headers'] = 'Content-Type'
    return response


def _database_is_up() -> bool:
    try:
        connection.ensure_connection()
    except DatabaseError:
        logger.exception('Database health check failed')
        return False
    return True


def _upload_failed(error: FileRecordError) -> HttpResponse:
    message = str(error)
    if error.status >= HTTPStatus.INTERNAL_SERVER_ERROR:
        message = _GENERIC_UPLOAD_ERROR
    return _with_cors(
        JsonResponse(
            {'status': 'FAIL', 'error': message},
            status=error.status,
        ),
    )


@csrf_exempt
@require_http_methods(['POST', 'OPTIONS'])
def upload(request: HttpRequest, token: str) -> HttpResponse:
    """Accept the single file for an upload token.

    Args:
        request: Multipart request with the file in the ``data`` field.
        token: Upload token from the URL.

    Returns:
        JSON ``{"status": "OK"}`` on success, ``FAIL`` with a message
        and the matching status code otherwise.
    """
    if request.method == 'OPTIONS':
        return _with_cors(HttpResponse())

    try:
        get_upload_gateway().handle_upload(token, lambda: request.FILES)
    except FileRecordError as error:
        logger.info('Upload %s rejected: %s', token[:8], error)
        return _upload_failed(error)

    return _with_cors(JsonResponse({'status': 'OK'}))


@require_GET
def download(request: HttpRequest, token: str) -> HttpResponse:
    """Stream stored bytes as an attachment named after the record.

    Args:
        request: Incoming request.
        token: Download token from the URL.

    Returns:
        File response, or an empty response with the error status.
    """
    try:
        stored_file, display_name = get_upload_gateway().open_download(token)
    except FileRecordError as error:
        return HttpResponse(status=error.status)

    return FileResponse(
        stored_file,
        as_attachment=True,
        filename=display_name,
    )


@require_GET
def health(request: HttpRequest) -> JsonResponse:
    """Report process health from dependency checks and recent requests.

    Args:
        request: Incoming request.

    Returns:
        Health snapshot, 503 when a dependency is down.
    """
    reporter = apps.get_app_config('messaging').health  # type: ignore[attr-defined]
    reporter.set_trait(_DATABASE_TRAIT, _database_is_up())
    snapshot = reporter.snapshot()
    status = HTTPStatus.OK
    if snapshot['status'] == HealthStatus.UNHEALTHY:
        status = HTTPStatus.SERVICE_UNAVAILABLE
    return JsonResponse(snapshot, status=status)
