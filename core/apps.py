import logging

from django.apps import AppConfig
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)


class CoreConfig(AppConfig):
    name = "core"

    def ready(self):
        """Validate storage settings on startup."""
        from django.conf import settings

        storage_root = settings.CIRRUS_STORAGE_ROOT
        temp_root = settings.CIRRUS_UPLOAD_TEMP_ROOT

        if not storage_root or not temp_root:
            raise ImproperlyConfigured(
                "CIRRUS_STORAGE_ROOT and CIRRUS_UPLOAD_TEMP_ROOT must both be set."
            )

        if settings.CIRRUS_MAX_UPLOAD_SIZE_MB <= 0:
            raise ImproperlyConfigured("CIRRUS_MAX_UPLOAD_SIZE_MB must be a positive number.")

        if not settings.CIRRUS_SMB_SYSTEM_FOLDER or "/" in settings.CIRRUS_SMB_SYSTEM_FOLDER:
            raise ImproperlyConfigured(
                "CIRRUS_SMB_SYSTEM_FOLDER must be a single folder name, "
                f"got '{settings.CIRRUS_SMB_SYSTEM_FOLDER}'"
            )

        logger.debug(f"Storage root: {storage_root}, upload temp root: {temp_root}")
