"""Django storage configuration for uploaded file bytes.

Two backends are supported:
- local filesystem (default), rooted at ``MEDIA_ROOT``
- S3-compatible storage (MinIO, R2, AWS) through django-storages

Select S3 with ``FILE_STORAGE_BACKEND=s3``.
"""

from typing import Any, Final

from server.settings.components import BASE_DIR, config

MEDIA_ROOT = config(
    'FILE_STORAGE_ROOT',
    default=str(BASE_DIR.joinpath('uploads')),
)

_BACKEND: Final = config('FILE_STORAGE_BACKEND', default='local')

if _BACKEND == 's3':
    _DEFAULT_STORAGE: dict[str, Any] = {
        'BACKEND': 'server.apps.files.infrastructure.storage.FileStorage',
        'OPTIONS': {
            'bucket_name': config('AWS_STORAGE_BUCKET_NAME', default='files'),
            'access_key': config('AWS_ACCESS_KEY_ID', default=None),
            'secret_key': config('AWS_SECRET_ACCESS_KEY', default=None),
            'endpoint_url': config(
                'AWS_S3_ENDPOINT_URL',
                default=None,
            ),
            'region_name': config(
                'AWS_S3_REGION_NAME',
                default='us-east-1',
            ),
            # Stored keys are upload tokens, a retry must replace the bytes
            'file_overwrite': True,
            'default_acl': None,  # Inherit bucket ACL
        },
    }
else:
    _DEFAULT_STORAGE = {
        'BACKEND': 'server.apps.files.infrastructure.storage.LocalFileStorage',
        'OPTIONS': {
            'location': MEDIA_ROOT,
        },
    }

STORAGES: Final[dict[str, dict[str, Any]]] = {
    'default': _DEFAULT_STORAGE,
    'staticfiles': {
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}
