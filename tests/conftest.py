"""Fixtures shared by every test package."""

import pytest
from django.apps import apps

from server.apps.files.logic.record_operations import resolve_display_name
from server.apps.gateway.logic.upload_gateway import UploadGateway
from server.apps.gateway.logic.upload_policy import MimeListMode, MimePolicy


@pytest.fixture(autouse=True)
def local_storage(settings, tmp_path):
    """Store uploaded bytes in a per-test temporary directory.

    Returns:
        Root directory of the test storage.
    """
    settings.STORAGES = {
        'default': {
            'BACKEND': (
                'server.apps.files.infrastructure.storage.LocalFileStorage'
            ),
            'OPTIONS': {'location': str(tmp_path)},
        },
        'staticfiles': {
            'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
        },
    }
    return tmp_path


@pytest.fixture
def upload_gateway(monkeypatch):
    """Fresh gateway installed as the process-wide one.

    Accepts up to 1 KiB and denies Windows executables.

    Returns:
        UploadGateway with an empty ticket registry.
    """
    gateway = UploadGateway(
        domain='http://files.test/',
        max_size=1024,
        policy=MimePolicy(
            MimeListMode.DENYLIST,
            ['application/x-msdownload'],
        ),
    )
    gateway.set_resolver(resolve_display_name)
    monkeypatch.setattr(apps.get_app_config('gateway'), 'gateway', gateway)
    return gateway
