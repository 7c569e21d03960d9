"""
Development settings for Cirrus Server.

Use this for local development with manage.py runserver. Tests run with
these settings too: jobs execute inline through the immediate task backend.
"""

from .base import *

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = config('DEBUG', default=True, cast=bool)

ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1,testserver', cast=Csv())

# Database - SQLite by default (inherited from base.py)

# Console email backend for development
EMAIL_BACKEND = 'django.core.mail.backends.console.EmailBackend'

# Simple console logging for development
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'cirrus.jobs': {
            'handlers': ['console'],
            'level': config('JOBS_LOG_LEVEL', default='DEBUG'),
            'propagate': False,
        },
    },
}

DEBUG_PROPAGATE_EXCEPTIONS = False
