"""Business logic for binding files to external events.

The relation is many-to-many and set-based. Every mutation is
idempotent: adding an existing binding is an ignored unique-constraint
conflict and removing a missing one deletes nothing. Callers therefore
cannot tell "already bound" from "just bound", and do not need to.

Every operation takes the same optional ``owner`` predicate. When it
is given, only records owned by that principal are touched:

- by-event operations (many records) silently skip excluded records,
  exactly as if they did not exist;
- by-file operations (one record) raise ``ForbiddenError`` so the
  caller can tell "not allowed" from "not found".

Known limitation: ``replace_files_for_event`` runs its remove and add
steps as two separate statements. A concurrent add on the same event
between them survives or is lost depending on interleaving.
"""

import logging
import uuid
from collections.abc import Iterable

from django.db import transaction
from django.db.models import Q

from server.apps.files.exceptions import (
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from server.apps.files.logic.record_operations import parse_record_id
from server.apps.files.models import EventBinding, FileRecord

logger = logging.getLogger(__name__)


def _record_owner_filter(owner: str | None) -> Q:
    if owner is None:
        return Q()
    return Q(owner=owner)


def _binding_owner_filter(owner: str | None) -> Q:
    if owner is None:
        return Q()
    return Q(file__owner=owner)


def _clean_event_id(event_id: object) -> str:
    if not isinstance(event_id, str) or not event_id:
        raise InvalidArgumentError(f'Invalid event ID: {event_id!r}')
    return event_id


def _clean_event_ids(event_ids: Iterable[object]) -> list[str]:
    # dict.fromkeys keeps the first occurrence and drops repeats
    return list(dict.fromkeys(
        _clean_event_id(event_id) for event_id in event_ids
    ))


def _parse_file_ids(file_ids: Iterable[object]) -> list[uuid.UUID]:
    return list(dict.fromkeys(
        parse_record_id(file_id) for file_id in file_ids
    ))


def _get_bindable_file(
    file_id: object,
    owner: str | None,
    *,
    lock: bool = False,
) -> FileRecord:
    """Load the single record a by-file operation works on.

    With ``lock`` the row stays locked until the surrounding
    transaction ends, so the record cannot be deleted under new
    bindings.

    Raises:
        InvalidArgumentError: If the id is malformed.
        NotFoundError: If the record does not exist.
        ForbiddenError: If the owner predicate excludes the record.
    """
    record_uuid = parse_record_id(file_id)
    records = FileRecord.objects.all()
    if lock:
        records = records.select_for_update()
    record = records.filter(id=record_uuid).only(
        'id',
        'owner',
    ).first()

    if record is None:
        raise NotFoundError(f'File record not found: {record_uuid}')
    if owner is not None and record.owner != owner:
        logger.warning(
            'Owner %s may not change bindings of %s',
            owner,
            record_uuid,
        )
        raise ForbiddenError(
            f'File record {record_uuid} is not owned by {owner}',
        )
    return record


def add_files_to_event(
    event_id: str,
    file_ids: Iterable[object],
    owner: str | None = None,
) -> bool:
    """Bind an event to every listed file.

    Files that do not exist, or that the owner predicate excludes,
    are skipped.

    Args:
        event_id: Event to bind.
        file_ids: Files to bind the event to.
        owner: Only touch files owned by this principal.

    Returns:
        True once the bindings are in place.

    Raises:
        InvalidArgumentError: If the event id or any file id is malformed.
    """
    clean_event_id = _clean_event_id(event_id)
    record_uuids = _parse_file_ids(file_ids)

    with transaction.atomic():
        existing_ids = list(
            FileRecord.objects.select_for_update().filter(
                Q(id__in=record_uuids) & _record_owner_filter(owner),
            ).values_list('id', flat=True),
        )
        EventBinding.objects.bulk_create(
            [
                EventBinding(file_id=record_uuid, event_id=clean_event_id)
                for record_uuid in existing_ids
            ],
            ignore_conflicts=True,
        )

    logger.info(
        'Bound event %s to %d of %d files',
        clean_event_id,
        len(existing_ids),
        len(record_uuids),
    )
    return True


def add_events_to_file(
    file_id: object,
    event_ids: Iterable[object],
    owner: str | None = None,
) -> bool:
    """Bind every listed event to one file.

    Args:
        file_id: File to bind.
        event_ids: Events to add to the file's set.
        owner: Require the file to be owned by this principal.

    Returns:
        True once the bindings are in place.

    Raises:
        InvalidArgumentError: If the file id or an event id is malformed.
        NotFoundError: If the file does not exist.
        ForbiddenError: If the owner predicate excludes the file.
    """
    clean_event_ids = _clean_event_ids(event_ids)

    with transaction.atomic():
        record = _get_bindable_file(file_id, owner, lock=True)
        EventBinding.objects.bulk_create(
            [
                EventBinding(file_id=record.id, event_id=clean_event_id)
                for clean_event_id in clean_event_ids
            ],
            ignore_conflicts=True,
        )

    logger.info(
        'Bound %d events to file %s',
        len(clean_event_ids),
        record.id,
    )
    return True


def remove_files_from_event(
    event_id: str,
    file_ids: Iterable[object],
    owner: str | None = None,
) -> bool:
    """Unbind an event from every listed file.

    Args:
        event_id: Event to unbind.
        file_ids: Files to unbind the event from.
        owner: Only touch files owned by this principal.

    Returns:
        True, whether or not any binding existed.

    Raises:
        InvalidArgumentError: If the event id or any file id is malformed.
    """
    clean_event_id = _clean_event_id(event_id)
    record_uuids = _parse_file_ids(file_ids)

    deleted, _ = EventBinding.objects.filter(
        Q(event_id=clean_event_id, file_id__in=record_uuids)
        & _binding_owner_filter(owner),
    ).delete()

    logger.info('Unbound event %s from %d files', clean_event_id, deleted)
    return True


def remove_events_from_file(
    file_id: object,
    event_ids: Iterable[object],
    owner: str | None = None,
) -> bool:
    """Unbind every listed event from one file.

    Args:
        file_id: File to unbind.
        event_ids: Events to remove from the file's set.
        owner: Require the file to be owned by this principal.

    Returns:
        True, whether or not any binding existed.

    Raises:
        InvalidArgumentError: If the file id or an event id is malformed.
        NotFoundError: If the file does not exist.
        ForbiddenError: If the owner predicate excludes the file.
    """
    record = _get_bindable_file(file_id, owner)
    clean_event_ids = _clean_event_ids(event_ids)

    deleted, _ = EventBinding.objects.filter(
        file_id=record.id,
        event_id__in=clean_event_ids,
    ).delete()

    logger.info('Unbound %d events from file %s', deleted, record.id)
    return True


def replace_files_for_event(
    event_id: str,
    file_ids: Iterable[object],
    owner: str | None = None,
) -> bool:
    """Make ``file_ids`` the exact set of files bound to an event.

    Runs in two steps: unbind the event from every (owner-filtered)
    file that has it, then bind it to the listed files. The steps are
    separate statements, see the module docstring.

    Args:
        event_id: Event whose files are replaced.
        file_ids: New set of files.
        owner: Only touch files owned by this principal.

    Returns:
        True once both steps ran.

    Raises:
        InvalidArgumentError: If the event id or any file id is malformed.
    """
    clean_event_id = _clean_event_id(event_id)
    record_uuids = _parse_file_ids(file_ids)

    deleted, _ = EventBinding.objects.filter(
        Q(event_id=clean_event_id) & _binding_owner_filter(owner),
    ).delete()
    logger.debug('Cleared %d bindings of event %s', deleted, clean_event_id)

    return add_files_to_event(clean_event_id, record_uuids, owner=owner)


def replace_events_for_file(
    file_id: object,
    event_ids: Iterable[object],
    owner: str | None = None,
) -> bool:
    """Overwrite the whole event set of one file.

    Args:
        file_id: File whose events are replaced.
        event_ids: New set of events.
        owner: Require the file to be owned by this principal.

    Returns:
        True once the set is replaced.

    Raises:
        InvalidArgumentError: If the file id or an event id is malformed.
        NotFoundError: If the file does not exist.
        ForbiddenError: If the owner predicate excludes the file.
    """
    clean_event_ids = _clean_event_ids(event_ids)

    with transaction.atomic():
        record = _get_bindable_file(file_id, owner, lock=True)
        EventBinding.objects.filter(file_id=record.id).exclude(
            event_id__in=clean_event_ids,
        ).delete()
        EventBinding.objects.bulk_create(
            [
                EventBinding(file_id=record.id, event_id=clean_event_id)
                for clean_event_id in clean_event_ids
            ],
            ignore_conflicts=True,
        )

    logger.info(
        'Replaced events of file %s with %d events',
        record.id,
        len(clean_event_ids),
    )
    return True


def list_events_for_file(
    file_id: object,
    owner: str | None = None,
) -> list[str]:
    """List the events bound to one file.

    Args:
        file_id: File to inspect.
        owner: Require the file to be owned by this principal.

    Returns:
        Sorted event ids.

    Raises:
        InvalidArgumentError: If the file id is malformed.
        NotFoundError: If the file does not exist.
        ForbiddenError: If the owner predicate excludes the file.
    """
    record = _get_bindable_file(file_id, owner)
    return list(
        EventBinding.objects.filter(file_id=record.id).order_by(
            'event_id',
        ).values_list('event_id', flat=True),
    )


def list_files_for_event(
    event_id: str,
    owner: str | None = None,
) -> list[str]:
    """List the files bound to one event.

    Args:
        event_id: Event to inspect.
        owner: Only include files owned by this principal.

    Returns:
        File ids as strings.

    Raises:
        InvalidArgumentError: If the event id is malformed.
    """
    clean_event_id = _clean_event_id(event_id)
    file_uuids = EventBinding.objects.filter(
        Q(event_id=clean_event_id) & _binding_owner_filter(owner),
    ).order_by('file_id').values_list('file_id', flat=True)
    return [str(file_uuid) for file_uuid in file_uuids]
