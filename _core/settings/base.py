"""
Base Django settings for Cirrus Server.

Shared by dev and production. Environment-specific values are read with
python-decouple so they can come from the process environment or a .env file.
"""

from pathlib import Path

from decouple import Csv, config

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = config("SECRET_KEY", default="django-insecure-change-me")

DEBUG = config("DEBUG", default=False, cast=bool)

ALLOWED_HOSTS = config("ALLOWED_HOSTS", default="localhost,127.0.0.1", cast=Csv())

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third party
    "rest_framework",
    "drf_spectacular",
    # Cirrus apps
    "core",
    "storage",
    "notifications",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "_core.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "_core.wsgi.application"

# Database - SQLite unless DATABASE_URL points somewhere else
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": config("SQLITE_PATH", default=str(BASE_DIR / "db.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# =============================================================================
# REST FRAMEWORK
# =============================================================================

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_THROTTLE_RATES": {
        "uploads": config("THROTTLE_UPLOADS", default="1000/hour"),
        "downloads": config("THROTTLE_DOWNLOADS", default="5000/hour"),
    },
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Cirrus Server API",
    "DESCRIPTION": "File storage and synchronization API",
    "VERSION": "0.1.0",
}

# =============================================================================
# TASKS
# =============================================================================
# ImmediateBackend runs jobs inline (development and tests). Production points
# TASKS_BACKEND at a worker-backed backend.

TASKS = {
    "default": {
        "BACKEND": config(
            "TASKS_BACKEND", default="django.tasks.backends.immediate.ImmediateBackend"
        ),
    }
}

# =============================================================================
# EMAIL
# =============================================================================

DEFAULT_FROM_EMAIL = config("DEFAULT_FROM_EMAIL", default="cirrus@localhost")

# =============================================================================
# CIRRUS STORAGE
# =============================================================================

CIRRUS_STORAGE_ROOT = Path(
    config("CIRRUS_STORAGE_ROOT", default=str(BASE_DIR / "storage_root"))
)

# Partial uploads live here until the session is finalized
CIRRUS_UPLOAD_TEMP_ROOT = Path(
    config("CIRRUS_UPLOAD_TEMP_ROOT", default=str(BASE_DIR / "upload_tmp"))
)

CIRRUS_UPLOAD_SESSION_TTL_HOURS = config(
    "CIRRUS_UPLOAD_SESSION_TTL_HOURS", default=24, cast=int
)

CIRRUS_MAX_UPLOAD_SIZE_MB = config("CIRRUS_MAX_UPLOAD_SIZE_MB", default=1024, cast=int)

# Folder on SMB shares reserved for server bookkeeping, never mirrored
CIRRUS_SMB_SYSTEM_FOLDER = config("CIRRUS_SMB_SYSTEM_FOLDER", default=".cirrus")

# =============================================================================
# CIRRUS NOTIFICATIONS
# =============================================================================

CIRRUS_NOTIFICATION_ADAPTERS = config(
    "CIRRUS_NOTIFICATION_ADAPTERS", default="db", cast=Csv()
)

# Minimum seconds between two notifications for the same subscription
CIRRUS_NOTIFICATION_THROTTLE_SECONDS = config(
    "CIRRUS_NOTIFICATION_THROTTLE_SECONDS", default=120, cast=int
)
