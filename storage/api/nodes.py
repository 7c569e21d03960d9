"""Collection and node API views."""

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response

from core.exceptions import NodeReadonly
from core.views import CirrusBaseAPIView

from storage.api.utils import parse_params, task_accepted_response
from storage.serializers import (
    CollectionCreateSerializer,
    NodeSerializer,
    TaskAcceptedSerializer,
)
from storage.services import NodeService
from storage.tasks import delete_node


class CollectionCreateView(CirrusBaseAPIView):
    """Create a collection."""

    @extend_schema(
        summary="Create collection",
        request=CollectionCreateSerializer,
        responses={
            201: NodeSerializer,
            409: OpenApiResponse(description="A node with the same name already exists"),
        },
        tags=["Collections"],
    )
    def post(self, request: Request) -> Response:
        params = parse_params(CollectionCreateSerializer, request.data)
        service = NodeService(request.user)
        parent = None
        if params.get("parent"):
            parent = service.get_node(params["parent"], is_directory=True)

        node = service.add_directory(parent, params["name"], user=request.user)
        return Response(NodeSerializer(node).data, status=status.HTTP_201_CREATED)


class CollectionChildrenView(CirrusBaseAPIView):
    """List the children of a collection (the root when no id is given)."""

    @extend_schema(
        summary="List collection children",
        parameters=[
            OpenApiParameter("deleted", OpenApiTypes.BOOL, description="Include deleted nodes"),
        ],
        responses={200: NodeSerializer(many=True)},
        tags=["Collections"],
    )
    def get(self, request: Request, node_id=None) -> Response:
        service = NodeService(request.user)
        include_deleted = request.query_params.get("deleted", "").lower() in ("1", "true")
        parent = None
        if node_id is not None:
            parent = service.get_node(node_id, include_deleted=include_deleted, is_directory=True)

        children = service.get_children(parent, include_deleted=include_deleted)
        data = NodeSerializer(children, many=True).data
        return Response({"data": data, "total": len(data)})


class NodeDetailView(CirrusBaseAPIView):
    """Get or delete a node."""

    @extend_schema(
        summary="Get node",
        responses={200: NodeSerializer, 404: OpenApiResponse(description="Node not found")},
        tags=["Nodes"],
    )
    def get(self, request: Request, node_id) -> Response:
        node = NodeService(request.user).get_node(node_id, include_deleted=True)
        return Response(NodeSerializer(node).data)

    @extend_schema(
        summary="Delete node",
        description=(
            "Queues deletion of the node and its subtree. Without `force` nodes are "
            "only marked deleted; with `force=1` their content is removed as well."
        ),
        parameters=[
            OpenApiParameter("force", OpenApiTypes.BOOL, description="Delete permanently"),
        ],
        responses={
            202: TaskAcceptedSerializer,
            404: OpenApiResponse(description="Node not found"),
            409: OpenApiResponse(description="Node is readonly"),
        },
        tags=["Nodes"],
    )
    def delete(self, request: Request, node_id) -> Response:
        force = request.query_params.get("force", "").lower() in ("1", "true")
        node = NodeService(request.user).get_node(node_id, include_deleted=force)
        if node.readonly:
            raise NodeReadonly(f"node {node.pk} is readonly")

        result = delete_node.enqueue(owner_id=request.user.pk, node_id=str(node.pk), force=force)
        return task_accepted_response(result)
