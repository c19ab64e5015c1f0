"""Upload/download gateway.

The gateway turns single-use tickets into upload URLs, accepts the
multipart upload for a ticket, stores the bytes and hands them to the
ticket's completion callback. It serves downloads by token, asking a
registered resolver for the display filename.

Upload validation runs in a fixed order and stops at the first failure:

1. the token must resolve to an issued ticket (404);
2. exactly one file must arrive, in the ``data`` field (400);
3. the file must not exceed the configured maximum size (413);
4. its MIME type must pass the configured policy (415).

No bytes are written before all four pass. The request body is only
parsed once the token is claimed, so an unknown token costs nothing.
"""

import logging
import re
from collections.abc import Callable
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Final, final

from django.apps import apps
from django.conf import settings
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import UploadedFile
from django.http.multipartparser import MultiPartParserError
from django.utils.datastructures import MultiValueDict

from server.apps.files.exceptions import (
    FileRecordError,
    InvalidArgumentError,
    NotFoundError,
    PayloadTooLargeError,
    StoreFailureError,
)
from server.apps.files.infrastructure.metadata import (
    detect_mime_type,
    extract_filename,
)
from server.apps.gateway.logic.ticket_registry import (
    ExpectedFile,
    TicketRegistry,
    UploadCallback,
)
from server.apps.gateway.logic.upload_policy import MimePolicy

if TYPE_CHECKING:
    from django.core.files import File

    from server.apps.files.models import FileRecord

logger = logging.getLogger(__name__)

UPLOAD_FIELD: Final = 'data'
_STORAGE_PREFIX: Final = 'uploads'
_TOKEN_PATTERN: Final = re.compile('^[0-9a-f]{32}$')
_DEFAULT_MAX_SIZE: Final = 10 * 1024 * 1024

# Maps a storage key to the filename shown on download
DisplayNameResolver = Callable[[str], str]

# Parses the request body on demand
FilesLoader = Callable[[], MultiValueDict[str, UploadedFile]]


class ResolverMissingError(FileRecordError):
    """Raised when a download arrives before a resolver is registered."""

    status = HTTPStatus.SERVICE_UNAVAILABLE


def storage_key_for(token: str) -> str:
    """Storage key the bytes of an upload token are written under.

    Args:
        token: Upload token.

    Returns:
        Storage key, e.g. ``uploads/<token>``.
    """
    return f'{_STORAGE_PREFIX}/{token}'


@final
class UploadGateway:
    """Issues upload URLs and serves uploads and downloads by token."""

    def __init__(  # noqa: WPS211
        self,
        *,
        domain: str,
        max_size: int,
        policy: MimePolicy,
        registry: TicketRegistry | None = None,
        storage: Any = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            domain: Public base URL upload and download links start with.
            max_size: Largest accepted upload in bytes.
            policy: MIME type policy for uploads.
            registry: Ticket registry, a fresh one if omitted.
            storage: Storage backend, ``default_storage`` if omitted.
        """
        self.domain = domain.rstrip('/')
        self.max_size = max_size
        self.policy = policy
        self.registry = registry or TicketRegistry()
        self._storage = storage
        self._resolver: DisplayNameResolver | None = None

    @classmethod
    def from_settings(cls) -> 'UploadGateway':
        """Build a gateway from the ``UPLOAD_*`` settings.

        Returns:
            Configured gateway with an empty ticket registry.
        """
        return cls(
            domain=settings.UPLOAD_DOMAIN,
            max_size=getattr(settings, 'UPLOAD_MAX_SIZE', _DEFAULT_MAX_SIZE),
            policy=MimePolicy.from_settings(),
        )

    @property
    def storage(self) -> Any:
        """Storage backend holding uploaded bytes."""
        if self._storage is None:
            return default_storage
        return self._storage

    def set_resolver(self, resolver: DisplayNameResolver) -> None:
        """Register how a storage key maps to a display filename.

        Args:
            resolver: Callable raising NotFoundError for unknown keys.
        """
        self._resolver = resolver

    def provision_upload_url(
        self,
        expected_file: ExpectedFile,
        on_complete: UploadCallback,
    ) -> str:
        """Issue a ticket and return the URL that redeems it.

        Args:
            expected_file: Record the upload will complete.
            on_complete: Finalizes the record once bytes are stored.

        Returns:
            Absolute upload URL.
        """
        ticket = self.registry.issue(expected_file, on_complete)
        return f'{self.domain}/upload/{ticket.token}'

    def generate_download_url(self, record: 'FileRecord') -> str:
        """Return the public download URL of a complete record.

        Args:
            record: Record with stored bytes.

        Returns:
            Absolute download URL.
        """
        token = record.storage_path.rsplit('/', 1)[-1]
        return f'{self.domain}/download/{token}'

    def handle_upload(
        self,
        token: str,
        load_files: FilesLoader,
    ) -> str:
        """Validate and store one upload, then complete its record.

        The ticket is claimed for the whole attempt, so a concurrent
        request with the same token sees NotFound. It is consumed only
        after the completion callback succeeds; on any failure it is
        released and the client may retry with the same token.

        Args:
            token: Token from the upload URL.
            load_files: Returns the uploaded files of the request keyed
                by field name. Called only after the token is claimed.

        Returns:
            Storage key the bytes were written to.

        Raises:
            NotFoundError: If the token is unknown or already used.
            InvalidArgumentError: If the multipart body is malformed or
                not exactly one file was sent in the ``data`` field.
            PayloadTooLargeError: If the file is larger than allowed.
            PolicyRejectedError: If the MIME type is not permitted.
            StoreFailureError: If the record could not be finalized.
        """
        ticket = self.registry.claim(token)
        try:
            upload = self._single_upload(_read_files(load_files))
            storage_path = self._store_upload(
                token,
                upload,
                ticket.on_complete,
            )
        except Exception:
            self.registry.release(token)
            raise

        self.registry.consume(token)
        return storage_path

    def open_download(self, token: str) -> tuple['File', str]:
        """Open the stored bytes of a download token.

        Args:
            token: Token from the download URL.

        Returns:
            Open binary file and the filename to present it as.

        Raises:
            ResolverMissingError: If no resolver is registered.
            NotFoundError: If the token maps to no stored file.
        """
        if self._resolver is None:
            raise ResolverMissingError('Download resolver is not registered')
        if not _TOKEN_PATTERN.match(token):
            raise NotFoundError('Download token not found')

        storage_path = storage_key_for(token)
        display_name = self._resolver(storage_path)
        if not self.storage.exists(storage_path):
            logger.error('Record points at missing bytes: %s', storage_path)
            raise NotFoundError('Download token not found')

        return self.storage.open(storage_path, 'rb'), display_name

    def delete_stored_file(self, storage_path: str) -> None:
        """Remove stored bytes if they exist.

        Args:
            storage_path: Storage key to delete.
        """
        if self.storage.exists(storage_path):
            self.storage.delete(storage_path)

    def _single_upload(
        self,
        files: MultiValueDict[str, UploadedFile],
    ) -> UploadedFile:
        if not files:
            raise InvalidArgumentError('Must provide a file')
        uploads = [
            upload
            for field in files
            for upload in files.getlist(field)
        ]
        if len(uploads) > 1:
            raise InvalidArgumentError('Must provide only one file')
        if UPLOAD_FIELD not in files:
            raise InvalidArgumentError(
                'File must be provided through the data parameter',
            )
        return uploads[0]

    def _store_upload(
        self,
        token: str,
        upload: UploadedFile,
        on_complete: UploadCallback,
    ) -> str:
        if upload.size is None or upload.size > self.max_size:
            raise PayloadTooLargeError(self.max_size, upload.size or 0)

        final_name = extract_filename(upload.name or token)
        mime_type = detect_mime_type(upload.content_type, final_name)
        self.policy.check(mime_type)

        storage_path = self.storage.save(storage_key_for(token), upload)
        try:
            on_complete(storage_path, final_name, mime_type)
        except Exception as error:
            logger.exception('Failed to finalise upload %s', storage_path)
            self.storage.rollback_upload(storage_path)
            raise StoreFailureError('failed to finalise upload') from error

        logger.info(
            'Upload stored: %s (%s, %d bytes)',
            storage_path,
            mime_type,
            upload.size,
        )
        return storage_path


def _read_files(
    load_files: FilesLoader,
) -> MultiValueDict[str, UploadedFile]:
    try:
        return load_files()
    except MultiPartParserError as error:
        raise InvalidArgumentError(
            f'Malformed multipart body: {error}',
        ) from error


def get_upload_gateway() -> UploadGateway:
    """Return the process-wide gateway owned by the gateway app.

    Returns:
        The gateway built when the app registry became ready.
    """
    return apps.get_app_config('gateway').gateway  # type: ignore[attr-defined]
