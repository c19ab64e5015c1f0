"""Discovery and deletion cascade for entities other services own.

Other services ask how many file records reference one of their
entities before deleting it, and ask for the cascade once it is gone.
"""

import logging
from typing import Final

from django.db import transaction

from server.apps.files.exceptions import InvalidArgumentError
from server.apps.files.logic.record_operations import (
    delete_record,
    parse_record_id,
)
from server.apps.files.models import EventBinding, FileRecord

logger = logging.getLogger(__name__)

ENTITY_FILE: Final = 'file'
ENTITY_EVENT: Final = 'event'


def _check_entity_type(entity_type: str) -> None:
    if entity_type not in {ENTITY_FILE, ENTITY_EVENT}:
        raise InvalidArgumentError(f'Unknown entity type: {entity_type!r}')


def _file_ids_for_event(event_id: str) -> list[object]:
    return list(
        EventBinding.objects.filter(event_id=event_id).values_list(
            'file_id',
            flat=True,
        ),
    )


def discover(entity_type: str, entity_id: str) -> int:
    """Count the file records referencing an entity.

    Args:
        entity_type: ``file`` or ``event``.
        entity_id: Identifier of the entity.

    Returns:
        Number of file records: 0 or 1 for a file, the number of
        bound files for an event.

    Raises:
        InvalidArgumentError: If the type is unknown or a file id is
            malformed.
    """
    _check_entity_type(entity_type)

    if entity_type == ENTITY_FILE:
        return FileRecord.objects.filter(
            id=parse_record_id(entity_id),
        ).count()
    return len(_file_ids_for_event(entity_id))


def cascade_delete(entity_type: str, entity_id: str) -> int:
    """Delete the file records referencing an entity.

    For an event this deletes every record bound to it, not just the
    bindings. Stored bytes go with the records through ``post_delete``.

    Args:
        entity_type: ``file`` or ``event``.
        entity_id: Identifier of the entity.

    Returns:
        Number of file records deleted.

    Raises:
        InvalidArgumentError: If the type is unknown or a file id is
            malformed.
        NotFoundError: If the type is ``file`` and the record is missing.
    """
    _check_entity_type(entity_type)

    if entity_type == ENTITY_FILE:
        delete_record(entity_id)
        return 1

    with transaction.atomic():
        file_ids = _file_ids_for_event(entity_id)
        _, deleted_per_model = FileRecord.objects.filter(
            id__in=file_ids,
        ).delete()

    deleted = deleted_per_model.get(FileRecord._meta.label, 0)
    logger.info(
        'Cascade for event %s deleted %d file records',
        entity_id,
        deleted,
    )
    return deleted
