"""Serializers for notifications app."""

from rest_framework import serializers

from .models import Notification, Subscription


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ["id", "subject", "body", "sender", "context", "created_at"]
        read_only_fields = fields


class SubscriptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Subscription
        fields = ["node", "exclude_me", "recursive", "last_notification", "created_at"]
        read_only_fields = fields


class SubscribeRequestSerializer(serializers.Serializer):
    """Request body for subscribing to a node."""

    exclude_me = serializers.BooleanField(default=True)
    recursive = serializers.BooleanField(default=False)


class PaginationParamsSerializer(serializers.Serializer):
    offset = serializers.IntegerField(min_value=0, default=0)
    limit = serializers.IntegerField(min_value=1, max_value=500, default=50)
