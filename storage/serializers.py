"""Serializers for storage app."""

from rest_framework import serializers

from core.services.smb_sync import ACTIONS, ADDED
from core.utils import MAX_NAME_LENGTH

from .models import FileVersion, Node
from .services import CONFLICT_OVERWRITE, CONFLICT_RENAME


class NodeSerializer(serializers.ModelSerializer):
    """Serializer for node metadata."""

    path = serializers.CharField(source="get_path", read_only=True)
    mount = serializers.SerializerMethodField()

    class Meta:
        model = Node
        fields = [
            "id",
            "name",
            "path",
            "parent",
            "is_directory",
            "size",
            "content_type",
            "hash",
            "version",
            "storage_reference",
            "mount",
            "readonly",
            "changed",
            "deleted",
            "created_at",
        ]
        read_only_fields = fields

    def get_mount(self, obj: Node):
        """Share address of a mount collection (credentials are never exposed)."""
        if not obj.is_mount:
            return None
        options = obj.mount_options or {}
        return {
            "host": options.get("host"),
            "share": options.get("share"),
            "root": options.get("root", ""),
        }


class FileVersionSerializer(serializers.ModelSerializer):
    """Serializer for one history entry."""

    class Meta:
        model = FileVersion
        fields = ["version", "type", "size", "hash", "changed", "user"]
        read_only_fields = fields


class PartialUploadSerializer(serializers.Serializer):
    """Response while a chunked upload waits for more chunks."""

    session = serializers.UUIDField()
    chunks_left = serializers.IntegerField()


class UploadParamsSerializer(serializers.Serializer):
    """Query parameters of a single-shot upload."""

    id = serializers.UUIDField(required=False)
    collection = serializers.UUIDField(required=False)
    name = serializers.CharField(required=False, max_length=MAX_NAME_LENGTH)
    conflict = serializers.ChoiceField(
        choices=[CONFLICT_OVERWRITE, CONFLICT_RENAME], default=CONFLICT_OVERWRITE
    )


class ChunkParamsSerializer(UploadParamsSerializer):
    """Query parameters of a chunk upload."""

    session = serializers.UUIDField(required=False)
    index = serializers.IntegerField(min_value=1)
    chunks = serializers.IntegerField(min_value=1)
    size = serializers.IntegerField(min_value=0, default=0)


class CollectionCreateSerializer(serializers.Serializer):
    """Request body for creating a collection."""

    name = serializers.CharField(max_length=MAX_NAME_LENGTH)
    parent = serializers.UUIDField(required=False, allow_null=True)


class MountCreateSerializer(CollectionCreateSerializer):
    """Request body for creating an SMB mount."""

    host = serializers.CharField()
    share = serializers.CharField()
    username = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(required=False, allow_blank=True, write_only=True)
    port = serializers.IntegerField(required=False, min_value=1, max_value=65535, default=445)
    root = serializers.CharField(required=False, allow_blank=True, default="")


class ScanRequestSerializer(serializers.Serializer):
    """Request body for scanning a mount."""

    path = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    action = serializers.ChoiceField(choices=ACTIONS, default=ADDED)
    recursive = serializers.BooleanField(default=True)


class RestoreRequestSerializer(serializers.Serializer):
    """Request body for restoring a file version."""

    version = serializers.IntegerField(min_value=1)


class TaskAcceptedSerializer(serializers.Serializer):
    """Response for operations handed to a background job."""

    task_id = serializers.CharField()
    status = serializers.CharField()
