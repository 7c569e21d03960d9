"""URL configuration for Cirrus API v1."""

import time

from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.urls import path

from notifications.api import (
    NodeSubscriptionView,
    NotificationDetailView,
    NotificationListView,
)
from storage.api import (
    CollectionChildrenView,
    CollectionCreateView,
    FileChunkUploadView,
    FileContentView,
    FileHistoryView,
    FileRestoreView,
    FileUploadView,
    MountCreateView,
    MountScanView,
    NodeDetailView,
)

# Server start time for uptime calculation
_server_start_time = time.time()


# Health check views (simple, no authentication)
def health_ping(request):
    """Basic health check for Docker healthcheck."""
    return JsonResponse({"status": "ok"})


def health_status(request):
    """Detailed health status with database check and uptime."""
    status_data = {
        "status": "healthy",
        "version": "0.1.0",
        "timestamp": int(time.time()),
    }

    uptime_seconds = int(time.time() - _server_start_time)
    hours = uptime_seconds // 3600
    minutes = (uptime_seconds % 3600) // 60
    status_data["uptime"] = f"{hours}h {minutes}m"

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        status_data["database"] = "connected"
    except DatabaseError:
        status_data["database"] = "error"
        status_data["status"] = "degraded"

    return JsonResponse(status_data)


urlpatterns = [
    # Health (no auth required for Docker healthchecks)
    path("health/", health_ping, name="health"),
    path("health/status/", health_status, name="health-status"),
    # =========================================================================
    # Files
    # =========================================================================
    path("files/", FileUploadView.as_view(), name="file-upload"),
    path("files/chunk/", FileChunkUploadView.as_view(), name="file-upload-chunk"),
    path("files/<uuid:node_id>/content/", FileContentView.as_view(), name="file-content"),
    path("files/<uuid:node_id>/history/", FileHistoryView.as_view(), name="file-history"),
    path("files/<uuid:node_id>/restore/", FileRestoreView.as_view(), name="file-restore"),
    # =========================================================================
    # Collections and nodes
    # =========================================================================
    path("collections/", CollectionCreateView.as_view(), name="collection-create"),
    path("collections/children/", CollectionChildrenView.as_view(), name="collection-children-root"),
    path(
        "collections/<uuid:node_id>/children/",
        CollectionChildrenView.as_view(),
        name="collection-children",
    ),
    path("nodes/<uuid:node_id>/", NodeDetailView.as_view(), name="node-detail"),
    # =========================================================================
    # SMB mounts
    # =========================================================================
    path("mounts/", MountCreateView.as_view(), name="mount-create"),
    path("mounts/<uuid:node_id>/scan/", MountScanView.as_view(), name="mount-scan"),
    # =========================================================================
    # Notifications
    # =========================================================================
    path("notifications/", NotificationListView.as_view(), name="notification-list"),
    path(
        "notifications/<uuid:notification_id>/",
        NotificationDetailView.as_view(),
        name="notification-detail",
    ),
    path(
        "nodes/<uuid:node_id>/subscription/",
        NodeSubscriptionView.as_view(),
        name="node-subscription",
    ),
]
