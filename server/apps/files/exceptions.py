"""Exceptions for files app.

Every error a caller is allowed to see derives from ``FileRecordError``
and carries the HTTP-style status the messaging and HTTP layers report.
"""

from http import HTTPStatus
from typing import ClassVar


class FileRecordError(Exception):
    """Base class for caller-facing file record errors."""

    status: ClassVar[HTTPStatus] = HTTPStatus.INTERNAL_SERVER_ERROR


class InvalidArgumentError(FileRecordError):
    """Raised for malformed identifiers, empty updates or bad filters."""

    status = HTTPStatus.BAD_REQUEST


class NotFoundError(FileRecordError):
    """Raised when a record, ticket or stored file does not exist."""

    status = HTTPStatus.NOT_FOUND


class ForbiddenError(FileRecordError):
    """Raised when the owner filter excludes a single-record operation."""

    status = HTTPStatus.FORBIDDEN


class PayloadTooLargeError(FileRecordError):
    """Raised when an upload exceeds the configured maximum size."""

    status = HTTPStatus.REQUEST_ENTITY_TOO_LARGE

    def __init__(self, max_size: int, actual_size: int) -> None:
        """Initialize PayloadTooLargeError.

        Args:
            max_size: Configured maximum payload in bytes.
            actual_size: Size of the rejected payload in bytes.
        """
        self.max_size = max_size
        self.actual_size = actual_size
        super().__init__(
            f'File is too large: {actual_size} bytes, '
            f'maximum is {max_size} bytes',
        )


class PolicyRejectedError(FileRecordError):
    """Raised when an upload's MIME type fails the configured policy."""

    status = HTTPStatus.UNSUPPORTED_MEDIA_TYPE

    def __init__(self, mime_type: str) -> None:
        """Initialize PolicyRejectedError.

        Args:
            mime_type: The rejected MIME type.
        """
        self.mime_type = mime_type
        super().__init__(
            'This file type is not permitted to be uploaded to this node',
        )


class StoreFailureError(FileRecordError):
    """Raised when the database did not confirm the expected write count.

    The message is logged but never shown to callers.
    """

    status = HTTPStatus.INTERNAL_SERVER_ERROR
