"""SMB mount API views."""

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response

from core.exceptions import NodeNotFound
from core.views import CirrusBaseAPIView

from storage.api.utils import parse_params, task_accepted_response
from storage.serializers import (
    MountCreateSerializer,
    NodeSerializer,
    ScanRequestSerializer,
    TaskAcceptedSerializer,
)
from storage.services import NodeService
from storage.tasks import smb_scan

MOUNT_OPTION_FIELDS = ("host", "share", "username", "password", "port", "root")


class MountCreateView(CirrusBaseAPIView):
    """Create a collection mirroring an SMB share."""

    @extend_schema(
        summary="Create SMB mount",
        description="Creates the mount collection and queues the initial scan of the share.",
        request=MountCreateSerializer,
        responses={
            201: NodeSerializer,
            400: OpenApiResponse(description="Invalid mount options"),
            409: OpenApiResponse(description="A node with the same name already exists"),
        },
        tags=["Mounts"],
    )
    def post(self, request: Request) -> Response:
        params = parse_params(MountCreateSerializer, request.data)
        service = NodeService(request.user)
        parent = None
        if params.get("parent"):
            parent = service.get_node(params["parent"], is_directory=True)

        options = {key: params[key] for key in MOUNT_OPTION_FIELDS if key in params}
        node = service.create_mount(parent, params["name"], options, user=request.user)
        return Response(NodeSerializer(node).data, status=status.HTTP_201_CREATED)


class MountScanView(CirrusBaseAPIView):
    """Queue a reconciliation of a mount with its share."""

    @extend_schema(
        summary="Scan SMB mount",
        request=ScanRequestSerializer,
        responses={
            202: TaskAcceptedSerializer,
            404: OpenApiResponse(description="Mount not found"),
        },
        tags=["Mounts"],
    )
    def post(self, request: Request, node_id) -> Response:
        params = parse_params(ScanRequestSerializer, request.data)
        mount = NodeService(request.user).get_node(node_id, is_directory=True)
        if not mount.is_mount:
            raise NodeNotFound(f"mount {node_id} not found")

        result = smb_scan.enqueue(
            mount_id=str(mount.pk),
            path=params["path"],
            action=params["action"],
            recursive=params["recursive"],
        )
        return task_accepted_response(result)
