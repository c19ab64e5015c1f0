"""Settings entry point.

Assembles the settings modules in ``server/settings/components``
with ``django-split-settings``. Order matters: later components may
read values defined by earlier ones.
"""

from split_settings.tools import include

include(
    'components/common.py',
    'components/logging.py',
    'components/storages.py',
    'components/uploads.py',
    'components/messaging.py',
)
