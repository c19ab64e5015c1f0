"""Metadata extraction utilities for files."""

import hashlib
import mimetypes
from pathlib import PurePosixPath, PureWindowsPath
from typing import BinaryIO, Final

_CHUNK_SIZE: Final = 8192  # 8KB chunks for checksum calculation
_DEFAULT_MIME_TYPE: Final = 'application/octet-stream'


def detect_mime_type(declared_type: str | None, filename: str) -> str:
    """Detect MIME type of an uploaded file.

    Trusts the type declared by the client in the multipart part, and
    falls back to guessing from the filename extension.

    Args:
        declared_type: MIME type sent with the upload, may be empty.
        filename: Filename with extension.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    if declared_type:
        return declared_type.split(';', 1)[0].strip().lower()
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return _DEFAULT_MIME_TYPE
    return mime_type


def calculate_checksum(file_obj: BinaryIO) -> str:
    """Calculate SHA256 checksum of file.

    Reads file in chunks to handle large files efficiently.
    Resets file pointer to beginning after calculation.

    Args:
        file_obj: File-like object to checksum.

    Returns:
        Hex-encoded SHA256 hash string.
    """
    sha256_hash = hashlib.sha256()

    # Reset file pointer to beginning
    file_obj.seek(0)

    # Read in chunks to handle large files
    for chunk in iter(lambda: file_obj.read(_CHUNK_SIZE), b''):
        sha256_hash.update(chunk)

    # Reset file pointer to beginning for subsequent operations
    file_obj.seek(0)

    return sha256_hash.hexdigest()


def extract_filename(client_name: str) -> str:
    """Extract a bare filename from a client supplied name.

    Browsers on Windows may send full paths, and a hostile client may
    send ``../`` components; only the final component is kept.

    Args:
        client_name: Name as sent in the multipart part.

    Returns:
        Filename without any directory part (e.g., 'report.pdf').
    """
    windows_name = PureWindowsPath(client_name).name
    return PurePosixPath(windows_name).name
