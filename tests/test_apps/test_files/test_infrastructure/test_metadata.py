"""Tests for metadata utilities."""

from django.core.files.base import ContentFile

from server.apps.files.infrastructure.metadata import (
    calculate_checksum,
    detect_mime_type,
    extract_filename,
)


def test_detect_mime_type_prefers_declared_type():
    """The type sent with the upload wins over the extension."""
    assert detect_mime_type('Image/PNG', 'photo.jpg') == 'image/png'
    assert detect_mime_type(
        'text/plain; charset=utf-8',
        'notes.txt',
    ) == 'text/plain'


def test_detect_mime_type_from_filename():
    """Without a declared type the extension decides."""
    assert detect_mime_type('', 'test.pdf') == 'application/pdf'
    assert detect_mime_type(None, 'test.txt') == 'text/plain'
    assert detect_mime_type('', 'test.jpg') == 'image/jpeg'


def test_detect_mime_type_unknown():
    """Unknown extensions fall back to octet-stream."""
    assert detect_mime_type('', 'test.unknown') == 'application/octet-stream'


def test_calculate_checksum():
    """Test SHA256 checksum calculation."""
    file_obj = ContentFile(b'test content')

    checksum = calculate_checksum(file_obj)

    assert checksum == (
        '6ae8a75555209fd6c44157c0aed8016e763ff435a19cf186f76863140143ff72'
    )
    # File pointer is rewound for the next reader
    assert file_obj.read() == b'test content'


def test_extract_filename():
    """Directory parts of client names are dropped."""
    assert extract_filename('test.txt') == 'test.txt'
    assert extract_filename('folder/subfolder/file.doc') == 'file.doc'
    assert extract_filename(r'C:\Users\me\report.pdf') == 'report.pdf'
    assert extract_filename('../../etc/passwd') == 'passwd'
