"""Custom throttle classes for Cirrus Server."""

from rest_framework.throttling import UserRateThrottle


class UploadRateThrottle(UserRateThrottle):
    """
    Throttle for file uploads.

    Rate: THROTTLE_UPLOADS (default 1000 requests per hour)
    Scope: 'uploads'

    Applied to: /api/v1/files/ and /api/v1/files/chunk/
    Purpose: Manage bandwidth and storage resources. Chunked uploads count
    every chunk, so the rate is sized for many requests per file.
    """
    scope = 'uploads'


class DownloadRateThrottle(UserRateThrottle):
    """
    Throttle for file downloads.

    Rate: THROTTLE_DOWNLOADS (default 5000 requests per hour)
    Scope: 'downloads'

    Applied to: /api/v1/files/{id}/content/
    """
    scope = 'downloads'
