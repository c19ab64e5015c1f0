"""Storage backends for uploaded file bytes."""

import logging
from typing import Any, final, override

from django.core.files.storage import FileSystemStorage
from storages.backends.s3 import S3Storage

logger = logging.getLogger(__name__)


class _LoggedStorageMixin:
    """Adds logging and upload rollback to a Django storage backend."""

    def save(  # noqa: WPS211
        self,
        name: str,
        content: Any,
        max_length: int | None = None,
    ) -> str:
        """Save file with error handling and logging.

        Args:
            name: Storage path for the file.
            content: File content (file-like object).
            max_length: Optional maximum length for the filename.

        Returns:
            Actual storage path used.

        Raises:
            Exception: If the backend write fails.
        """
        try:
            logger.info('Uploading file to storage: %s', name)
            saved_name = super().save(name, content, max_length)  # type: ignore[misc]
            logger.info('Successfully uploaded file: %s', saved_name)
        except Exception:
            logger.exception('Failed to upload file to storage: %s', name)
            raise
        else:
            return saved_name

    def delete(self, name: str) -> None:
        """Delete file with error handling and logging.

        Args:
            name: Storage path of file to delete.

        Raises:
            Exception: If the backend delete fails.
        """
        try:
            logger.info('Deleting file from storage: %s', name)
            super().delete(name)  # type: ignore[misc]
            logger.info('Successfully deleted file: %s', name)
        except Exception:
            logger.exception('Failed to delete file from storage: %s', name)
            raise

    def rollback_upload(self, name: str) -> None:
        """Delete uploaded bytes after the record update failed.

        Best effort: if deletion fails the error is logged, not raised,
        since the upload is already being reported as failed.

        Args:
            name: Storage path of file to delete.
        """
        try:
            logger.warning('Rolling back upload, deleting file: %s', name)
            self.delete(name)
            logger.info('Successfully rolled back file upload: %s', name)
        except Exception:
            # The retry with the same token overwrites the same key
            logger.exception(
                'Failed to rollback upload, orphaned file: %s',
                name,
            )


@final
class FileStorage(_LoggedStorageMixin, S3Storage):
    """S3-compatible storage backend (MinIO, Cloudflare R2, AWS)."""


@final
class LocalFileStorage(_LoggedStorageMixin, FileSystemStorage):
    """Local filesystem storage backend.

    Saving to an existing name replaces the bytes, so a retried upload
    with the same token lands on the same key.
    """

    @override
    def get_available_name(
        self,
        name: str,
        max_length: int | None = None,
    ) -> str:
        """Return ``name`` unchanged, replacing any existing file.

        Args:
            name: Requested storage path.
            max_length: Optional maximum length for the filename.

        Returns:
            The requested name.
        """
        if self.exists(name):
            self.delete(name)
        return name
