"""Shared fixtures for files app tests."""

import boto3
import pytest
from moto import mock_aws

from server.apps.files.models import FileRecord


@pytest.fixture
def file_record(db):
    """Incomplete record owned by ``alice``.

    Returns:
        FileRecord without stored bytes.
    """
    return FileRecord.objects.create(
        owner='alice',
        name='report',
        filename='report.pdf',
        size=1000,
        content_type='application/pdf',
    )


@pytest.fixture
def other_record(db):
    """Incomplete record owned by ``bob``.

    Returns:
        Second FileRecord for isolation tests.
    """
    return FileRecord.objects.create(
        owner='bob',
        name='holiday photo',
        filename='beach.jpg',
        size=2048,
        content_type='image/jpeg',
    )


@pytest.fixture
def mock_s3(monkeypatch):
    """Mock S3 service with a files bucket.

    Yields:
        boto3 S3 resource with the ``files`` bucket created.
    """
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    with mock_aws():
        conn = boto3.resource('s3', region_name='us-east-1')
        conn.create_bucket(Bucket='files')
        yield conn

