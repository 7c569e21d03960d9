"""File operation API views."""

from io import BytesIO

from django.http import FileResponse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response

from core.throttling import DownloadRateThrottle, UploadRateThrottle
from core.views import CirrusBaseAPIView

from storage.api.utils import parse_params
from storage.serializers import (
    ChunkParamsSerializer,
    FileVersionSerializer,
    NodeSerializer,
    PartialUploadSerializer,
    RestoreRequestSerializer,
    UploadParamsSerializer,
)
from storage.services import NodeService, PartialUpload

UPLOAD_PARAMETERS = [
    OpenApiParameter("id", OpenApiTypes.UUID, description="Existing file to update"),
    OpenApiParameter("collection", OpenApiTypes.UUID, description="Parent collection (default: root)"),
    OpenApiParameter("name", OpenApiTypes.STR, description="Name of a new file"),
    OpenApiParameter(
        "conflict",
        OpenApiTypes.INT,
        description="0 overwrites a file with the same name, 1 stores under 'name (n).ext'",
    ),
]


def _request_stream(request: Request):
    # DRF drops the stream for empty bodies
    return request.stream or BytesIO(b"")


def _node_response(node, created: bool) -> Response:
    return Response(
        NodeSerializer(node).data,
        status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
    )


class FileUploadView(CirrusBaseAPIView):
    """Upload a whole file in one request."""

    throttle_classes = [UploadRateThrottle]

    @extend_schema(
        summary="Upload file",
        description=(
            "Upload the raw request body as file content. Either `id` (update an "
            "existing file) or `name` (create or overwrite in `collection`) is required."
        ),
        parameters=UPLOAD_PARAMETERS,
        request={"application/octet-stream": OpenApiTypes.BINARY},
        responses={
            200: NodeSerializer,
            201: NodeSerializer,
            400: OpenApiResponse(description="Invalid parameters"),
            409: OpenApiResponse(description="Name conflict or file is readonly"),
            413: OpenApiResponse(description="File too large"),
        },
        tags=["Files"],
    )
    def put(self, request: Request) -> Response:
        params = parse_params(UploadParamsSerializer, request.query_params)
        service = NodeService(request.user)
        node, created = service.put(
            _request_stream(request),
            id=params.get("id"),
            collection=params.get("collection"),
            name=params.get("name"),
            conflict=params["conflict"],
        )
        return _node_response(node, created)


class FileChunkUploadView(CirrusBaseAPIView):
    """Upload one chunk of a file."""

    throttle_classes = [UploadRateThrottle]

    @extend_schema(
        summary="Upload file chunk",
        description=(
            "Chunks are sent in order with a 1-based `index`. The first chunk opens an "
            "upload session whose id must accompany every following chunk. Answers 206 "
            "until the last chunk arrived, then 200 (updated) or 201 (created). "
            "Repeating an already stored chunk is harmless; repeating a chunk after the "
            "upload completed answers 200 with the stored file until the session expires."
        ),
        parameters=UPLOAD_PARAMETERS + [
            OpenApiParameter("session", OpenApiTypes.UUID, description="Upload session from the first chunk"),
            OpenApiParameter("index", OpenApiTypes.INT, required=True),
            OpenApiParameter("chunks", OpenApiTypes.INT, required=True),
            OpenApiParameter("size", OpenApiTypes.INT, description="Expected total size in bytes"),
        ],
        request={"application/octet-stream": OpenApiTypes.BINARY},
        responses={
            200: NodeSerializer,
            201: NodeSerializer,
            206: PartialUploadSerializer,
            404: OpenApiResponse(description="Upload session not found or expired"),
            409: OpenApiResponse(description="Chunk out of order, name conflict or readonly"),
        },
        tags=["Files"],
    )
    def put(self, request: Request) -> Response:
        params = parse_params(ChunkParamsSerializer, request.query_params)
        service = NodeService(request.user)
        result = service.put_chunk(
            _request_stream(request),
            session_id=params.get("session"),
            id=params.get("id"),
            collection=params.get("collection"),
            name=params.get("name"),
            index=params["index"],
            chunks=params["chunks"],
            size=params["size"],
            conflict=params["conflict"],
        )

        if isinstance(result, PartialUpload):
            return Response(
                {"session": str(result.session.pk), "chunks_left": result.chunks_left},
                status=status.HTTP_206_PARTIAL_CONTENT,
            )

        node, created = result
        return _node_response(node, created)


class FileContentView(CirrusBaseAPIView):
    """Download file content."""

    throttle_classes = [DownloadRateThrottle]

    @extend_schema(
        summary="Download file",
        responses={
            (200, "application/octet-stream"): OpenApiTypes.BINARY,
            404: OpenApiResponse(description="File not found"),
        },
        tags=["Files"],
    )
    def get(self, request: Request, node_id) -> FileResponse:
        service = NodeService(request.user)
        node = service.get_node(node_id, is_directory=False)
        response = FileResponse(
            service.open_content(node),
            as_attachment=True,
            filename=node.name,
            content_type=node.content_type or "application/octet-stream",
        )
        response["ETag"] = f'"{node.hash}"'
        return response


class FileHistoryView(CirrusBaseAPIView):
    """List the content history of a file."""

    @extend_schema(
        summary="File history",
        responses={200: FileVersionSerializer(many=True)},
        tags=["Files"],
    )
    def get(self, request: Request, node_id) -> Response:
        service = NodeService(request.user)
        node = service.get_node(node_id, is_directory=False)
        history = service.get_history(node)
        return Response({"data": FileVersionSerializer(history, many=True).data})


class FileRestoreView(CirrusBaseAPIView):
    """Restore an older version of a file."""

    @extend_schema(
        summary="Restore file version",
        request=RestoreRequestSerializer,
        responses={
            200: NodeSerializer,
            404: OpenApiResponse(description="File or version not found"),
        },
        tags=["Files"],
    )
    def post(self, request: Request, node_id) -> Response:
        params = parse_params(RestoreRequestSerializer, request.data)
        service = NodeService(request.user)
        node = service.get_node(node_id, is_directory=False)
        node = service.restore(node, params["version"], user=request.user)
        return Response(NodeSerializer(node).data)
