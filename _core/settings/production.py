"""
Production settings for Cirrus Server.

Use this for Docker deployment and production environments.
"""

import os
from .base import *

# =============================================================================
# SENTRY ERROR TRACKING (OPTIONAL)
# =============================================================================
# Only initialized when SENTRY_DSN is provided.

SENTRY_DSN = config('SENTRY_DSN', default='')

if SENTRY_DSN:
    import logging
    import re

    import sentry_sdk
    from sentry_sdk.integrations.django import DjangoIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    def filter_sensitive_data(event, hint):
        """
        Remove credentials from Sentry events before sending.

        SMB mount options carry share passwords, so request bodies and
        exception messages are scrubbed as well as headers.
        """
        request = event.get('request', {})
        headers = request.get('headers', {})
        if 'Authorization' in headers:
            headers['Authorization'] = '[Filtered]'

        data = request.get('data')
        if isinstance(data, dict):
            for field in ('password', 'token', 'secret', 'mount_options'):
                if field in data:
                    data[field] = '[Filtered]'

        for exc in event.get('exception', {}).get('values', []):
            if 'value' in exc:
                exc['value'] = re.sub(r'password=\S+', 'password=[Filtered]', exc['value'])

        return event

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[
            DjangoIntegration(
                transaction_style='url',
                middleware_spans=True,
                signals_spans=False,
            ),
            LoggingIntegration(
                level=logging.INFO,        # breadcrumbs
                event_level=logging.ERROR  # events
            ),
        ],
        traces_sample_rate=config('SENTRY_TRACES_SAMPLE_RATE', default=0.1, cast=float),
        environment=config('ENVIRONMENT', default='production'),
        release=config('GIT_COMMIT', default='unknown'),
        send_default_pii=False,
        before_send=filter_sensitive_data,
        max_breadcrumbs=50,
        attach_stacktrace=True,
    )

    logging.getLogger(__name__).info(
        f"Sentry initialized for environment '{config('ENVIRONMENT', default='production')}'"
    )

DEBUG = config('DEBUG', default=False, cast=bool)

# Must be explicitly set in production
ALLOWED_HOSTS = config('ALLOWED_HOSTS', cast=Csv())

# Docker mode: PostgreSQL from POSTGRES_* variables, otherwise SQLite from base.py
if os.getenv('POSTGRES_HOST') and os.getenv('POSTGRES_HOST') != 'localhost':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('POSTGRES_DB', 'cirrus'),
            'USER': os.getenv('POSTGRES_USER', 'cirrus'),
            'PASSWORD': os.getenv('POSTGRES_PASSWORD'),
            'HOST': os.getenv('POSTGRES_HOST'),
            'PORT': os.getenv('POSTGRES_PORT', '5432'),
            'CONN_MAX_AGE': 600,
        }
    }

INSTALLED_APPS = [*INSTALLED_APPS, 'corsheaders']

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

if SENTRY_DSN:
    MIDDLEWARE.append('core.middleware.SentryContextMiddleware')

CORS_ALLOWED_ORIGINS = config('CORS_ALLOWED_ORIGINS', default='', cast=Csv())

STORAGES = {
    'default': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
    },
    'staticfiles': {
        'BACKEND': 'whitenoise.storage.CompressedManifestStaticFilesStorage',
    },
}

# =============================================================================
# PRODUCTION SECURITY SETTINGS
# =============================================================================
# Deployed behind a TLS-terminating reverse proxy.

SECURE_SSL_REDIRECT = config('SECURE_SSL_REDIRECT', default=False, cast=bool)
SECURE_HSTS_SECONDS = config('SECURE_HSTS_SECONDS', default=31536000, cast=int)
SECURE_HSTS_INCLUDE_SUBDOMAINS = config('SECURE_HSTS_INCLUDE_SUBDOMAINS', default=True, cast=bool)
SECURE_HSTS_PRELOAD = config('SECURE_HSTS_PRELOAD', default=True, cast=bool)
SESSION_COOKIE_SECURE = config('SESSION_COOKIE_SECURE', default=True, cast=bool)
CSRF_COOKIE_SECURE = config('CSRF_COOKIE_SECURE', default=True, cast=bool)
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = 'DENY'

# Console logging only (captured by docker logs)
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': config('LOG_LEVEL', default='INFO'),
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': config('DJANGO_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
        'cirrus.jobs': {
            'handlers': ['console'],
            'level': config('JOBS_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
        'cirrus.audit': {
            'handlers': ['console'],
            'level': config('AUDIT_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
    },
}

EMAIL_BACKEND = config(
    'EMAIL_BACKEND',
    default='django.core.mail.backends.smtp.EmailBackend'
)

ADMINS = [
    ('Cirrus Admin', config('ADMIN_EMAIL', default='admin@cirrus.local')),
]
MANAGERS = ADMINS
