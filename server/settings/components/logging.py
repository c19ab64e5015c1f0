"""Logging configuration.

Every module logs through ``logging.getLogger(__name__)``; this maps
the ``server`` namespace and the libraries we care about to stdout.
"""

from server.settings.components import config

_LOG_LEVEL = config('DJANGO_LOG_LEVEL', default='INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'console': {
            'format': '%(asctime)s - %(name)s - [%(levelname)s] - %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'console',
        },
    },
    'loggers': {
        'server': {
            'handlers': ['console'],
            'level': _LOG_LEVEL,
            'propagate': True,
        },
        'django': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': True,
        },
        # pika is chatty at INFO on every reconnect
        'pika': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
        'cheroot': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
}
