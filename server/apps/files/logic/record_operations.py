"""Business logic for file record (metadata store) operations.

Records are created before their bytes exist and finalized once an
upload completes. All writes are single-statement conditional updates
so concurrent requests on different records never block each other.
"""

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, Final

from django.db import DatabaseError, transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from server.apps.files.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    StoreFailureError,
)
from server.apps.files.models import FileRecord

logger = logging.getLogger(__name__)

# Fields a caller may change after creation
_UPDATABLE_FIELDS: Final = frozenset(('name', 'content_type'))

_TEXT_FIELDS: Final = ('name', 'filename')
_EPOCH: Final = datetime(1970, 1, 1, tzinfo=UTC)

DownloadUrlFactory = Callable[[FileRecord], str]


def parse_record_id(raw_id: object) -> uuid.UUID:
    """Parse a caller supplied record identifier.

    Args:
        raw_id: Identifier as received (string or UUID).

    Returns:
        Parsed UUID.

    Raises:
        InvalidArgumentError: If the identifier is not a well-formed UUID.
    """
    if isinstance(raw_id, uuid.UUID):
        return raw_id
    try:
        return uuid.UUID(str(raw_id))
    except (TypeError, ValueError, AttributeError) as error:
        raise InvalidArgumentError(f'Invalid ID: {raw_id!r}') from error


def create_record(
    owner: str,
    name: str,
    filename: str,
    size: int,
    content_type: str = '',
) -> FileRecord:
    """Insert a new incomplete record.

    The record has no events, no storage path and no checksum until an
    upload finalizes it.

    Args:
        owner: Identifier of the creating principal.
        name: Descriptive name.
        filename: Declared filename.
        size: Declared size in bytes.
        content_type: Declared content type.

    Returns:
        Created FileRecord.

    Raises:
        InvalidArgumentError: If the size is negative.
        StoreFailureError: If the database did not confirm the insert.
    """
    if size < 0:
        raise InvalidArgumentError('File size cannot be negative')

    try:
        with transaction.atomic():
            record = FileRecord.objects.create(
                owner=owner,
                name=name,
                filename=filename,
                size=size,
                content_type=content_type,
            )
    except DatabaseError as error:
        logger.exception('Failed to insert file record for owner %s', owner)
        raise StoreFailureError('failed to insert') from error

    logger.info('File record inserted: %s (owner: %s)', record.id, owner)
    return record


def finalize_record(  # noqa: WPS211
    record_id: uuid.UUID | str,
    storage_path: str,
    final_name: str,
    content_type: str,
    checksum: str,
) -> None:
    """Attach the uploaded bytes to an existing record.

    Args:
        record_id: Record to finalize.
        storage_path: Storage key of the uploaded bytes.
        final_name: Filename of the uploaded file.
        content_type: MIME type of the uploaded file.
        checksum: SHA256 hex digest of the uploaded bytes.

    Raises:
        InvalidArgumentError: If the id is malformed.
        NotFoundError: If no record has this id.
        StoreFailureError: If more than one row was modified.
    """
    record_uuid = parse_record_id(record_id)

    updated = FileRecord.objects.filter(id=record_uuid).update(
        storage_path=storage_path,
        filename=final_name,
        content_type=content_type,
        checksum=checksum,
        modified_at=timezone.now(),
    )

    if updated == 0:
        raise NotFoundError(f'File record not found: {record_uuid}')
    if updated != 1:
        logger.error(
            'Finalize of %s modified %d rows instead of 1',
            record_uuid,
            updated,
        )
        raise StoreFailureError('Failed to update')

    logger.info('File record finalized: %s -> %s', record_uuid, storage_path)


def _created_at_filter(created_at: datetime | int) -> Q:
    """Build an exact match on creation time at millisecond resolution."""
    if isinstance(created_at, datetime):
        start = created_at.replace(
            microsecond=created_at.microsecond // 1000 * 1000,
        )
    else:
        start = _EPOCH + timedelta(milliseconds=created_at)
    return Q(
        created_at__gte=start,
        created_at__lt=start + timedelta(milliseconds=1),
    )


def _text_filter(text_values: list[str]) -> Q:
    """Combine all requested text fields into one search expression.

    Every term from every requested field has to occur in either the
    name or the filename, so adding a second text field narrows the
    result.
    """
    combined = Q()
    for text_value in text_values:
        for term in text_value.split():
            term_match = Q()
            for field in _TEXT_FIELDS:
                term_match |= Q(**{f'{field}__icontains': term})
            combined &= term_match
    return combined


def query_records(  # noqa: WPS211
    *,
    record_id: str | None = None,
    name: str | None = None,
    filename: str | None = None,
    size: int | None = None,
    content_type: str | None = None,
    created_at: datetime | int | None = None,
    owner: str | None = None,
    download_url_for: DownloadUrlFactory | None = None,
) -> list[FileRecord]:
    """Find records matching every given filter.

    All filters are optional; no filters returns every record. Each
    returned record carries a ``download_url`` attribute, resolved
    through ``download_url_for`` when the record has stored bytes and
    ``None`` otherwise.

    Args:
        record_id: Exact record id.
        name: Text searched in name and filename.
        filename: Text searched in name and filename.
        size: Exact declared size.
        content_type: Exact content type.
        created_at: Exact creation time (datetime or epoch milliseconds).
        owner: Exact owner.
        download_url_for: Builds a download URL for a complete record.

    Returns:
        List of matching records, newest first.

    Raises:
        InvalidArgumentError: If ``record_id`` is malformed.
    """
    lookup = Q()

    if record_id is not None:
        lookup &= Q(id=parse_record_id(record_id))

    text_values = [
        text_value
        for text_value in (name, filename)
        if text_value is not None
    ]
    if text_values:
        lookup &= _text_filter(text_values)

    if size is not None:
        lookup &= Q(size=size)
    if content_type is not None:
        lookup &= Q(content_type=content_type)
    if created_at is not None:
        lookup &= _created_at_filter(created_at)
    if owner is not None:
        lookup &= Q(owner=owner)

    records = list(
        FileRecord.objects.filter(lookup).prefetch_related('bindings'),
    )

    for record in records:
        record.download_url = None  # type: ignore[attr-defined]
        if record.is_complete and download_url_for is not None:
            record.download_url = download_url_for(record)  # type: ignore[attr-defined]

    logger.debug('Record query matched %d records', len(records))
    return records


def update_record(
    record_id: uuid.UUID | str,
    fields: Mapping[str, Any],
) -> FileRecord:
    """Update descriptive fields of one record.

    Args:
        record_id: Record to update.
        fields: New values, only ``name`` and ``content_type`` allowed.

    Returns:
        Updated FileRecord.

    Raises:
        InvalidArgumentError: If the id is malformed, nothing is given,
            or a field is not updatable.
        NotFoundError: If no record has this id.
    """
    record_uuid = parse_record_id(record_id)

    if not fields:
        raise InvalidArgumentError('Nothing to update')

    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        raise InvalidArgumentError(
            'Fields cannot be updated: {fields}'.format(
                fields=', '.join(sorted(unknown)),
            ),
        )

    updated = FileRecord.objects.filter(id=record_uuid).update(
        modified_at=timezone.now(),
        **fields,
    )
    if updated == 0:
        raise NotFoundError(f'File record not found: {record_uuid}')

    logger.info(
        'File record updated: %s (%s)',
        record_uuid,
        ', '.join(sorted(fields)),
    )
    return FileRecord.objects.get(id=record_uuid)


def delete_record(record_id: uuid.UUID | str) -> None:
    """Delete one record together with its bindings.

    Stored bytes are removed by the ``post_delete`` signal handler.

    Args:
        record_id: Record to delete.

    Raises:
        InvalidArgumentError: If the id is malformed.
        NotFoundError: If no record has this id.
    """
    record_uuid = parse_record_id(record_id)

    try:
        record = FileRecord.objects.get(id=record_uuid)
    except FileRecord.DoesNotExist as error:
        raise NotFoundError(f'File record not found: {record_uuid}') from error

    with transaction.atomic():
        record.delete()

    logger.info('File record deleted: %s', record_uuid)


def resolve_display_name(storage_path: str) -> str:
    """Resolve a storage key to the filename shown on download.

    Args:
        storage_path: Storage key of uploaded bytes.

    Returns:
        Display filename of the owning record.

    Raises:
        NotFoundError: If no record owns this storage key.
    """
    filename = FileRecord.objects.filter(
        storage_path=storage_path,
    ).values_list('filename', flat=True).first()

    if filename is None:
        raise NotFoundError(f'No file record for {storage_path}')
    return filename


def incomplete_records_before(cutoff: datetime) -> QuerySet[FileRecord]:
    """Records that never received their bytes, created before cutoff.

    Args:
        cutoff: Only records created strictly before this are returned.

    Returns:
        QuerySet of incomplete records, oldest first.
    """
    return FileRecord.objects.filter(
        storage_path='',
        created_at__lt=cutoff,
    ).order_by('created_at')
