"""MIME type policy for uploads."""

import enum
import logging
from collections.abc import Iterable
from typing import final

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from server.apps.files.exceptions import PolicyRejectedError

logger = logging.getLogger(__name__)


class MimeListMode(enum.StrEnum):
    """How the configured MIME list is applied."""

    ALLOWLIST = 'ALLOWLIST'
    DENYLIST = 'DENYLIST'


@final
class MimePolicy:
    """Accepts or rejects an upload by MIME type.

    In ``ALLOWLIST`` mode only listed types pass; in ``DENYLIST`` mode
    every type except the listed ones passes.
    """

    def __init__(self, mode: MimeListMode, mime_types: Iterable[str]) -> None:
        """Initialize the policy.

        Args:
            mode: Allow-list or deny-list.
            mime_types: Listed MIME types, compared case-insensitively.
        """
        self.mode = mode
        self.mime_types = frozenset(
            mime_type.lower() for mime_type in mime_types
        )

    @classmethod
    def from_settings(cls) -> 'MimePolicy':
        """Build the policy from ``UPLOAD_MIME_MODE`` and ``UPLOAD_MIME_LIST``.

        Returns:
            Configured policy.

        Raises:
            ImproperlyConfigured: If the mode is not a known value.
        """
        raw_mode = str(getattr(settings, 'UPLOAD_MIME_MODE', 'DENYLIST'))
        try:
            mode = MimeListMode(raw_mode.upper())
        except ValueError as error:
            raise ImproperlyConfigured(
                f'UPLOAD_MIME_MODE must be ALLOWLIST or DENYLIST, got {raw_mode!r}',
            ) from error
        return cls(mode, getattr(settings, 'UPLOAD_MIME_LIST', []))

    def allows(self, mime_type: str) -> bool:
        """Check a MIME type against the policy.

        Args:
            mime_type: Type of the uploaded file.

        Returns:
            True if the type may be uploaded.
        """
        listed = mime_type.lower() in self.mime_types
        if self.mode is MimeListMode.ALLOWLIST:
            return listed
        return not listed

    def check(self, mime_type: str) -> None:
        """Raise if the policy rejects a MIME type.

        Args:
            mime_type: Type of the uploaded file.

        Raises:
            PolicyRejectedError: If the type is not permitted.
        """
        if not self.allows(mime_type):
            logger.warning(
                'Upload rejected by %s policy: %s',
                self.mode.value,
                mime_type,
            )
            raise PolicyRejectedError(mime_type)
