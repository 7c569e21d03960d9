"""
Service layer for Cirrus Server.

Services encapsulate business logic shared by views, background jobs and
management commands.
"""

from .smb_sync import SmbScanner, SmbScanStats
from .upload import UploadSessionService

__all__ = [
    "SmbScanner",
    "SmbScanStats",
    "UploadSessionService",
]
