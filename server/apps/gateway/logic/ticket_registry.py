"""In-memory registry of single-use upload tickets.

Tickets live only in process memory. A restart drops every issued
ticket, and the records they were issued for stay incomplete until
the ``cleanup_incomplete`` command sweeps them.
"""

import logging
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final, final

from server.apps.files.exceptions import NotFoundError

logger = logging.getLogger(__name__)

# Token length in bytes (generates 32 hex chars)
_TOKEN_BYTES: Final = 16

# Called with (storage_path, final_name, content_type) once bytes are stored
UploadCallback = Callable[[str, str, str], None]


@final
@dataclass(frozen=True, slots=True)
class ExpectedFile:
    """Metadata of the record a ticket was issued for."""

    id: str
    owner: str
    name: str
    filename: str
    size: int
    content_type: str


@final
@dataclass(frozen=True, slots=True)
class UploadTicket:
    """Credential authorizing one upload for one record."""

    token: str
    expected_file: ExpectedFile
    on_complete: UploadCallback


@final
class TicketRegistry:
    """Thread-safe map from upload token to ticket.

    A ticket is ``issued`` until an upload claims it. While an upload
    holds the claim no other request can see the ticket. The upload
    then either consumes it (success, removed for good) or releases it
    (failure, issued again so the client may retry with the same
    token).
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._lock = threading.Lock()
        self._issued: dict[str, UploadTicket] = {}
        self._claimed: dict[str, UploadTicket] = {}

    def __len__(self) -> int:
        """Number of tickets not yet consumed."""
        with self._lock:
            return len(self._issued) + len(self._claimed)

    def issue(
        self,
        expected_file: ExpectedFile,
        on_complete: UploadCallback,
    ) -> UploadTicket:
        """Create a ticket under a fresh unguessable token.

        Args:
            expected_file: Record the upload will complete.
            on_complete: Finalizes the record once bytes are stored.

        Returns:
            The issued ticket.
        """
        with self._lock:
            token = secrets.token_hex(_TOKEN_BYTES)
            while token in self._issued or token in self._claimed:
                token = secrets.token_hex(_TOKEN_BYTES)

            ticket = UploadTicket(
                token=token,
                expected_file=expected_file,
                on_complete=on_complete,
            )
            self._issued[token] = ticket

        logger.info(
            'Upload ticket issued for record %s: %s',
            expected_file.id,
            token[:8],
        )
        return ticket

    def claim(self, token: str) -> UploadTicket:
        """Atomically take an issued ticket for one upload attempt.

        Args:
            token: Upload token from the request path.

        Returns:
            The claimed ticket.

        Raises:
            NotFoundError: If the token is unknown, consumed, or
                currently claimed by another request.
        """
        with self._lock:
            ticket = self._issued.pop(token, None)
            if ticket is None:
                raise NotFoundError('Upload token not found')
            self._claimed[token] = ticket
        return ticket

    def release(self, token: str) -> None:
        """Return a claimed ticket to the issued state.

        Args:
            token: Token previously returned by ``claim``.
        """
        with self._lock:
            ticket = self._claimed.pop(token, None)
            if ticket is not None:
                self._issued[token] = ticket

    def consume(self, token: str) -> None:
        """Remove a claimed ticket for good after a successful upload.

        Args:
            token: Token previously returned by ``claim``.
        """
        with self._lock:
            ticket = self._claimed.pop(token, None)

        if ticket is not None:
            logger.info(
                'Upload ticket consumed for record %s: %s',
                ticket.expected_file.id,
                token[:8],
            )
