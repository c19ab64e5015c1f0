"""Routes broker requests to file record operations.

Every request produces exactly one response. Caller mistakes come back
with their status and message; anything unexpected is logged in full
and answered with status 500 and a generic message.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from http import HTTPStatus
from typing import Any, Final, final

from pydantic import ValidationError

from server.apps.files.exceptions import FileRecordError, InvalidArgumentError
from server.apps.files.logic import binding_operations as bindings
from server.apps.files.logic.discovery_operations import (
    cascade_delete,
    discover,
)
from server.apps.files.logic.lifecycle import create_file
from server.apps.files.logic.record_operations import (
    delete_record,
    query_records,
    update_record,
)
from server.apps.files.models import FileRecord
from server.apps.gateway.logic.upload_gateway import UploadGateway
from server.apps.messaging.health import RequestTracker
from server.apps.messaging.schemas import (
    BindingMessage,
    CreateFileMessage,
    DeleteFileMessage,
    DiscoveryMessage,
    Intention,
    ReadFileMessage,
    RequestMessage,
    ResponseMessage,
    UpdateFileMessage,
)

logger = logging.getLogger(__name__)

DETAILS_PREFIX: Final = 'file.details.'
EVENTS_PREFIX: Final = 'file.events.'
DISCOVER_KEY: Final = 'file.discover'
CASCADE_KEY: Final = 'file.cascade'

_INTERNAL_ERROR: Final = 'internal server error'
_INVALID_STRUCTURE: Final = 'invalid message structure'
_EPOCH: Final = datetime(1970, 1, 1, tzinfo=UTC)


class MessageRejectedError(FileRecordError):
    """Raised for requests that cannot be routed to any operation."""

    status = HTTPStatus.METHOD_NOT_ALLOWED


@final
@dataclass(frozen=True, slots=True)
class HandlerResult:
    """What a handler hands back for the response body."""

    result: list[Any] | bool = field(default_factory=list)
    upload_uri: str | None = None


def serialize_record(record: FileRecord) -> dict[str, object]:
    """Convert a queried record to its wire representation.

    Args:
        record: Record returned by ``query_records``.

    Returns:
        JSON-ready dict, ``createdAt`` in epoch milliseconds.
    """
    return {
        'id': str(record.id),
        'name': record.name,
        'filename': record.filename,
        'size': record.size,
        'contentType': record.content_type,
        'owner': record.owner,
        'checksum': record.checksum or None,
        'createdAt': (
            (record.created_at - _EPOCH) // timedelta(milliseconds=1)
        ),
        'downloadURL': getattr(record, 'download_url', None),
        'events': record.event_ids(),
    }


def _require_ids(ids: list[str] | None, wire_name: str) -> list[str]:
    if ids is None:
        raise InvalidArgumentError(f'Must provide {wire_name}')
    return ids


def _envelope_value(payload: Mapping[str, Any], key: str) -> Any:
    envelope_value = payload.get(key)
    if isinstance(envelope_value, (int, str)):
        return envelope_value
    return None


@final
class MessageDispatcher:
    """Turns one decoded request into one response dict."""

    def __init__(
        self,
        gateway: UploadGateway,
        tracker: RequestTracker | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            gateway: Gateway issuing upload and download URLs.
            tracker: Records the outcome of every request, if given.
        """
        self.gateway = gateway
        self.tracker = tracker

    def dispatch(
        self,
        routing_key: str,
        payload: object,
    ) -> dict[str, object]:
        """Handle one request.

        Args:
            routing_key: Routing key the request was published with.
            payload: Decoded JSON body.

        Returns:
            Response in wire format, never raises.
        """
        if not isinstance(payload, Mapping):
            payload = {}

        try:
            handler = self._route(routing_key)
            outcome = handler(payload)
        except ValidationError as error:
            logger.info('Invalid %s message: %s', routing_key, error)
            status = HTTPStatus.METHOD_NOT_ALLOWED
            outcome = HandlerResult(result=[_INVALID_STRUCTURE])
        except FileRecordError as error:
            status = error.status
            message = str(error)
            if status >= HTTPStatus.INTERNAL_SERVER_ERROR:
                logger.exception('Failed to handle %s', routing_key)
                message = _INTERNAL_ERROR
            outcome = HandlerResult(result=[message])
        except Exception:
            logger.exception('Unexpected error handling %s', routing_key)
            status = HTTPStatus.INTERNAL_SERVER_ERROR
            outcome = HandlerResult(result=[_INTERNAL_ERROR])
        else:
            status = HTTPStatus.OK

        if self.tracker is not None:
            self.tracker.record(status < HTTPStatus.INTERNAL_SERVER_ERROR)

        return ResponseMessage(
            msg_id=_envelope_value(payload, 'msg_id'),
            msg_intention=_envelope_value(payload, 'msg_intention'),
            user_id=_envelope_value(payload, 'userID'),
            status=status,
            result=outcome.result,
            upload_uri=outcome.upload_uri,
        ).to_wire()

    def _route(
        self,
        routing_key: str,
    ) -> Callable[[Mapping[str, Any]], HandlerResult]:
        if routing_key.startswith(DETAILS_PREFIX):
            return self._handle_details
        if routing_key.startswith(EVENTS_PREFIX):
            return self._handle_bindings
        if routing_key == DISCOVER_KEY:
            return self._handle_discover
        if routing_key == CASCADE_KEY:
            return self._handle_cascade
        raise MessageRejectedError(f'Unknown routing key: {routing_key}')

    def _handle_details(self, payload: Mapping[str, Any]) -> HandlerResult:
        intention = RequestMessage.model_validate(payload).msg_intention
        if intention is Intention.CREATE:
            return self._create(CreateFileMessage.model_validate(payload))
        if intention is Intention.READ:
            return self._read(ReadFileMessage.model_validate(payload))
        if intention is Intention.UPDATE:
            update = UpdateFileMessage.model_validate(payload)
            record = update_record(update.id, update.changed_fields())
            return HandlerResult(result=[str(record.id)])

        removal = DeleteFileMessage.model_validate(payload)
        delete_record(removal.id)
        return HandlerResult(result=[removal.id])

    def _create(self, message: CreateFileMessage) -> HandlerResult:
        created = create_file(
            owner=message.user_id,
            name=message.name,
            filename=message.filename,
            size=message.size,
            content_type=message.content_type,
            gateway=self.gateway,
        )
        return HandlerResult(result=[created.id], upload_uri=created.upload_url)

    def _read(self, message: ReadFileMessage) -> HandlerResult:
        records = query_records(
            record_id=message.id,
            name=message.name,
            filename=message.filename,
            size=message.size,
            content_type=message.content_type,
            created_at=message.created_at,
            owner=message.owner,
            download_url_for=self.gateway.generate_download_url,
        )
        return HandlerResult(
            result=[serialize_record(record) for record in records],
        )

    def _handle_bindings(self, payload: Mapping[str, Any]) -> HandlerResult:
        message = BindingMessage.model_validate(payload)
        owner = message.user_id if message.owner_only else None

        if message.event_id is not None:
            return self._bind_by_event(message, message.event_id, owner)
        if message.file_id is not None:
            return self._bind_by_file(message, message.file_id, owner)
        raise InvalidArgumentError('Must provide either eventID or fileID')

    def _bind_by_event(
        self,
        message: BindingMessage,
        event_id: str,
        owner: str | None,
    ) -> HandlerResult:
        if message.msg_intention is Intention.READ:
            return HandlerResult(
                result=bindings.list_files_for_event(event_id, owner=owner),
            )

        operation = {
            Intention.CREATE: bindings.add_files_to_event,
            Intention.UPDATE: bindings.replace_files_for_event,
            Intention.DELETE: bindings.remove_files_from_event,
        }[message.msg_intention]
        file_ids = _require_ids(message.file_ids, 'fileIDs')
        return HandlerResult(result=operation(event_id, file_ids, owner=owner))

    def _bind_by_file(
        self,
        message: BindingMessage,
        file_id: str,
        owner: str | None,
    ) -> HandlerResult:
        if message.msg_intention is Intention.READ:
            return HandlerResult(
                result=bindings.list_events_for_file(file_id, owner=owner),
            )

        operation = {
            Intention.CREATE: bindings.add_events_to_file,
            Intention.UPDATE: bindings.replace_events_for_file,
            Intention.DELETE: bindings.remove_events_from_file,
        }[message.msg_intention]
        event_ids = _require_ids(message.event_ids, 'eventIDs')
        return HandlerResult(result=operation(file_id, event_ids, owner=owner))

    def _handle_discover(self, payload: Mapping[str, Any]) -> HandlerResult:
        message = DiscoveryMessage.model_validate(payload)
        return HandlerResult(
            result=[discover(message.asset_type, message.asset_id)],
        )

    def _handle_cascade(self, payload: Mapping[str, Any]) -> HandlerResult:
        message = DiscoveryMessage.model_validate(payload)
        return HandlerResult(
            result=[cascade_delete(message.asset_type, message.asset_id)],
        )
