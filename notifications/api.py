"""Notification and subscription API views."""

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response

from core.views import CirrusBaseAPIView, error_response
from storage.api.utils import parse_params
from storage.services import NodeService

from . import services
from .serializers import (
    NotificationSerializer,
    PaginationParamsSerializer,
    SubscribeRequestSerializer,
    SubscriptionSerializer,
)


class NotificationListView(CirrusBaseAPIView):
    """List the current user's notifications, newest first."""

    @extend_schema(
        summary="List notifications",
        parameters=[
            OpenApiParameter("offset", OpenApiTypes.INT),
            OpenApiParameter("limit", OpenApiTypes.INT),
        ],
        responses={200: NotificationSerializer(many=True)},
        tags=["Notifications"],
    )
    def get(self, request: Request) -> Response:
        params = parse_params(PaginationParamsSerializer, request.query_params)
        notifications, total = services.get_notifications(
            request.user, offset=params["offset"], limit=params["limit"]
        )
        return Response({
            "data": NotificationSerializer(notifications, many=True).data,
            "total": total,
        })


class NotificationDetailView(CirrusBaseAPIView):
    """Read or dismiss one notification."""

    @extend_schema(
        summary="Get notification",
        responses={
            200: NotificationSerializer,
            404: OpenApiResponse(description="Notification not found"),
        },
        tags=["Notifications"],
    )
    def get(self, request: Request, notification_id) -> Response:
        notification = services.get_notification(request.user, notification_id)
        return Response(NotificationSerializer(notification).data)

    @extend_schema(
        summary="Delete notification",
        responses={
            204: None,
            404: OpenApiResponse(description="Notification not found"),
        },
        tags=["Notifications"],
    )
    def delete(self, request: Request, notification_id) -> Response:
        services.delete_notification(request.user, notification_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class NodeSubscriptionView(CirrusBaseAPIView):
    """Subscribe to or unsubscribe from changes of a node."""

    @extend_schema(
        summary="Get node subscription",
        responses={
            200: SubscriptionSerializer,
            404: OpenApiResponse(description="Not subscribed"),
        },
        tags=["Notifications"],
    )
    def get(self, request: Request, node_id) -> Response:
        node = NodeService(request.user).get_node(node_id)
        subscription = services.get_subscription(request.user, node)
        if subscription is None:
            return error_response(
                "SUBSCRIPTION_NOT_FOUND", "Not subscribed to this node.", status.HTTP_404_NOT_FOUND
            )
        return Response(SubscriptionSerializer(subscription).data)

    @extend_schema(
        summary="Subscribe to node",
        request=SubscribeRequestSerializer,
        responses={200: SubscriptionSerializer},
        tags=["Notifications"],
    )
    def post(self, request: Request, node_id) -> Response:
        params = parse_params(SubscribeRequestSerializer, request.data)
        node = NodeService(request.user).get_node(node_id)
        subscription = services.subscribe_node(
            request.user,
            node,
            exclude_me=params["exclude_me"],
            recursive=params["recursive"],
        )
        return Response(SubscriptionSerializer(subscription).data)

    @extend_schema(
        summary="Unsubscribe from node",
        responses={204: None},
        tags=["Notifications"],
    )
    def delete(self, request: Request, node_id) -> Response:
        node = NodeService(request.user).get_node(node_id)
        services.subscribe_node(request.user, node, subscribe=False)
        return Response(status=status.HTTP_204_NO_CONTENT)
