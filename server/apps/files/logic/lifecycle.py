"""Record lifecycle: create a record, hand out its upload URL, finalize.

The coordinator is the only place that knows both the metadata store
and the upload gateway. The gateway never touches records directly;
it calls back into the finalizer built here once the bytes are stored.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, final

from server.apps.files.infrastructure.metadata import calculate_checksum
from server.apps.files.logic.record_operations import (
    create_record,
    finalize_record,
)
from server.apps.files.models import FileRecord
from server.apps.gateway.logic.ticket_registry import (
    ExpectedFile,
    UploadCallback,
)

if TYPE_CHECKING:
    from server.apps.gateway.logic.upload_gateway import UploadGateway

logger = logging.getLogger(__name__)


@final
@dataclass(frozen=True, slots=True)
class CreatedFile:
    """Result of a create: the new record id and where to upload."""

    id: str
    upload_url: str


def _expected_file(record: FileRecord) -> ExpectedFile:
    return ExpectedFile(
        id=str(record.id),
        owner=record.owner,
        name=record.name,
        filename=record.filename,
        size=record.size,
        content_type=record.content_type,
    )


def make_finalizer(
    record_id: uuid.UUID,
    gateway: 'UploadGateway',
) -> UploadCallback:
    """Build the callback that completes one record after its upload.

    The callback checksums the stored bytes and writes the storage
    path, final name, content type and checksum in a single update.
    Any error it raises makes the gateway roll the upload back.

    Args:
        record_id: Record the upload belongs to.
        gateway: Gateway whose storage holds the uploaded bytes.

    Returns:
        Callback taking (storage_path, final_name, content_type).
    """

    def finalize(  # noqa: WPS430
        storage_path: str,
        final_name: str,
        content_type: str,
    ) -> None:
        with gateway.storage.open(storage_path, 'rb') as stored_file:
            checksum = calculate_checksum(stored_file)
        finalize_record(
            record_id,
            storage_path,
            final_name,
            content_type,
            checksum,
        )

    return finalize


def create_file(  # noqa: WPS211
    *,
    owner: str,
    name: str,
    filename: str,
    size: int,
    content_type: str = '',
    gateway: 'UploadGateway',
) -> CreatedFile:
    """Create an incomplete record and provision its upload URL.

    Args:
        owner: Identifier of the creating principal.
        name: Descriptive name.
        filename: Declared filename.
        size: Declared size in bytes.
        content_type: Declared content type.
        gateway: Gateway issuing the upload ticket.

    Returns:
        The new record id and its single-use upload URL.

    Raises:
        InvalidArgumentError: If the size is negative.
        StoreFailureError: If the record could not be inserted.
    """
    record = create_record(
        owner=owner,
        name=name,
        filename=filename,
        size=size,
        content_type=content_type,
    )

    try:
        upload_url = gateway.provision_upload_url(
            _expected_file(record),
            make_finalizer(record.id, gateway),
        )
    except Exception:
        logger.exception(
            'Failed to provision upload URL, removing record %s',
            record.id,
        )
        record.delete()
        raise

    logger.info('File created: %s (owner: %s)', record.id, owner)
    return CreatedFile(id=str(record.id), upload_url=upload_url)
