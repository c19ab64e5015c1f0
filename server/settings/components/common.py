"""Django settings shared by every environment."""

from typing import Final

from server.settings.components import BASE_DIR, config

SECRET_KEY = config('DJANGO_SECRET_KEY', default='insecure-development-key')

DEBUG = config('DJANGO_DEBUG', cast=bool, default=False)

ALLOWED_HOSTS = config(
    'DJANGO_ALLOWED_HOSTS',
    cast=lambda hosts: [host.strip() for host in hosts.split(',')],
    default='*',
)

INSTALLED_APPS: Final = (
    'django.contrib.contenttypes',

    # Our apps:
    'server.apps.files',
    'server.apps.gateway',
    'server.apps.messaging',
)

MIDDLEWARE: Final = (
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
)

ROOT_URLCONF = 'server.urls'

WSGI_APPLICATION = 'server.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': config(
            'DJANGO_DATABASE_ENGINE',
            default='django.db.backends.sqlite3',
        ),
        'NAME': config(
            'DJANGO_DATABASE_NAME',
            default=str(BASE_DIR.joinpath('db.sqlite3')),
        ),
        'USER': config('DJANGO_DATABASE_USER', default=''),
        'PASSWORD': config('DJANGO_DATABASE_PASSWORD', default=''),
        'HOST': config('DJANGO_DATABASE_HOST', default=''),
        'PORT': config('DJANGO_DATABASE_PORT', default=''),
    },
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'

USE_I18N = False

TIME_ZONE = 'UTC'

USE_TZ = True

# Uploads are accepted in full by the gateway itself, which enforces
# UPLOAD_MAX_SIZE after parsing the multipart body.
FILE_UPLOAD_MAX_MEMORY_SIZE = config(
    'DJANGO_FILE_UPLOAD_MAX_MEMORY_SIZE',
    cast=int,
    default=2621440,
)
