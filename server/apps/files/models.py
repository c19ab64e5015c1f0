"""Database models for files app."""

import uuid
from typing import ClassVar, Final, final, override

from django.db import models

# Constants for field max lengths
_NAME_MAX_LENGTH: Final = 255
_OWNER_MAX_LENGTH: Final = 255
_CONTENT_TYPE_MAX_LENGTH: Final = 255
_STORAGE_PATH_MAX_LENGTH: Final = 1024
_CHECKSUM_MAX_LENGTH: Final = 64  # SHA256 hex length
_EVENT_ID_MAX_LENGTH: Final = 255


@final
class FileRecord(models.Model):
    """Metadata for one file, with or without its bytes attached.

    A record is created before any bytes exist. It stays incomplete
    (empty ``storage_path``) until an upload against its ticket
    finalizes it with the stored location, display name, content type
    and checksum.

    The events a file is bound to live in ``EventBinding``; use
    ``event_ids()`` to read them as a set-like list.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )

    # Creating principal, opaque to this service
    owner = models.CharField(
        max_length=_OWNER_MAX_LENGTH,
        db_index=True,
    )

    # Descriptive metadata
    name = models.CharField(
        max_length=_NAME_MAX_LENGTH,
    )

    filename = models.CharField(
        max_length=_NAME_MAX_LENGTH,
        help_text='Display filename, replaced by the uploaded name',
    )

    size = models.BigIntegerField(
        help_text='Declared file size in bytes',
    )

    content_type = models.CharField(
        max_length=_CONTENT_TYPE_MAX_LENGTH,
        blank=True,
        default='',
        help_text='Declared type, replaced by the uploaded MIME type',
    )

    # Set once the bytes arrive
    storage_path = models.CharField(
        max_length=_STORAGE_PATH_MAX_LENGTH,
        blank=True,
        default='',
        help_text='Storage key of the uploaded bytes, empty until upload',
    )

    checksum = models.CharField(
        max_length=_CHECKSUM_MAX_LENGTH,
        blank=True,
        default='',
        help_text='SHA256 hash of the uploaded bytes',
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    modified_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'File record'  # type: ignore[mutable-override]
        verbose_name_plural = 'File records'  # type: ignore[mutable-override]
        ordering: ClassVar[list[str]] = ['-created_at']

        indexes: ClassVar[list[models.Index]] = [
            # Combined index backing the name/filename text search
            models.Index(
                fields=['name', 'filename'],
                name='files_text_idx',
            ),
            # Download resolution looks records up by storage key
            models.Index(
                fields=['storage_path'],
                name='files_storage_path_idx',
            ),
            models.Index(
                fields=['owner', '-created_at'],
                name='files_owner_recent_idx',
            ),
        ]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.CheckConstraint(
                condition=models.Q(size__gte=0),
                name='files_size_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner}:{self.filename} ({self.id})'

    @property
    def is_complete(self) -> bool:
        """Whether the bytes for this record have been uploaded."""
        return bool(self.storage_path)

    def event_ids(self) -> list[str]:
        """Return the ids of the events this file is bound to.

        Returns:
            Sorted list of event ids, no duplicates.
        """
        # Iterates .all() so a prefetch_related('bindings') is reused
        return sorted(binding.event_id for binding in self.bindings.all())


@final
class EventBinding(models.Model):
    """One member of a file's ``events`` set.

    The unique (file, event_id) pair is what makes binding idempotent:
    adding a member that already exists is an ignored conflict, never
    a duplicate row.
    """

    file = models.ForeignKey(
        FileRecord,
        on_delete=models.CASCADE,
        related_name='bindings',
    )

    event_id = models.CharField(
        max_length=_EVENT_ID_MAX_LENGTH,
        db_index=True,
    )

    bound_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'Event binding'  # type: ignore[mutable-override]
        verbose_name_plural = 'Event bindings'  # type: ignore[mutable-override]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.UniqueConstraint(
                fields=['file', 'event_id'],
                name='bindings_file_event_unique',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.file_id}->{self.event_id}'
