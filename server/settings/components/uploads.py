"""Upload/download gateway settings."""

from server.settings.components import config


def _csv(raw_value: str) -> list[str]:
    return [item.strip() for item in raw_value.split(',') if item.strip()]


# Public base URL used to build upload and download links
UPLOAD_DOMAIN = config('UPLOAD_DOMAIN', default='http://localhost:1432')

# HTTP server host and port
UPLOAD_HOST = config('UPLOAD_HOST', default='0.0.0.0')
UPLOAD_PORT = config('UPLOAD_PORT', cast=int, default=1432)

# Maximum accepted payload in bytes (10 MiB)
UPLOAD_MAX_SIZE = config('UPLOAD_MAX_SIZE', cast=int, default=10 * 1024 * 1024)

# MIME policy: the list is either an allow-list or a deny-list
UPLOAD_MIME_LIST = config('UPLOAD_MIME_LIST', cast=_csv, default='')
UPLOAD_MIME_MODE = config('UPLOAD_MIME_MODE', default='DENYLIST')
