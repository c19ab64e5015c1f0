"""Signal handlers for files app."""

import logging

from django.db.models.signals import post_delete
from django.dispatch import receiver

from server.apps.files.models import FileRecord
from server.apps.gateway.logic.upload_gateway import get_upload_gateway

logger = logging.getLogger(__name__)


@receiver(post_delete, sender=FileRecord)
def delete_file_from_storage(
    sender: type[FileRecord],
    instance: FileRecord,
    **kwargs: object,
) -> None:
    """Delete uploaded bytes when their FileRecord is deleted.

    Covers every delete path: the delete operation, the event cascade
    and the incomplete-record sweep. Records without bytes are skipped.

    Args:
        sender: The FileRecord model class.
        instance: The FileRecord instance being deleted.
        **kwargs: Additional signal arguments.
    """
    if not instance.is_complete:
        return

    try:
        get_upload_gateway().delete_stored_file(instance.storage_path)
    except Exception:
        # DB delete already succeeded, the bytes are orphaned
        logger.exception(
            'Failed to delete file from storage (orphaned): %s',
            instance.storage_path,
        )
