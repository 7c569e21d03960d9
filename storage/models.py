from datetime import timedelta

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.models import AbstractBaseModel


class Node(AbstractBaseModel):
    """
    A file or collection in a user's virtual filesystem tree.

    File bytes live in a storage backend at ``storage_path``; the row only
    carries metadata and content pointers. Nodes mirrored from an SMB share
    point at their mount through ``storage_reference``.
    """

    ADAPTER_LOCAL = "local"
    ADAPTER_SMB = "smb"
    ADAPTER_CHOICES = [
        (ADAPTER_LOCAL, "Local storage"),
        (ADAPTER_SMB, "SMB share"),
    ]

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="nodes"
    )
    parent = models.ForeignKey(
        "self",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="children",
    )
    name = models.CharField(max_length=255)
    is_directory = models.BooleanField(default=False)

    # File content pointers
    size = models.BigIntegerField(default=0)
    content_type = models.CharField(max_length=100, blank=True)
    hash = models.CharField(max_length=32, blank=True)
    version = models.PositiveIntegerField(default=0)
    storage_path = models.CharField(max_length=1024, blank=True)

    # Mount collection the node was mirrored from (null = local node)
    storage_reference = models.ForeignKey(
        "self",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="mirrored_nodes",
    )

    # Mount configuration, only set on mount collections
    storage_adapter = models.CharField(
        max_length=20, choices=ADAPTER_CHOICES, default=ADAPTER_LOCAL
    )
    mount_options = models.JSONField(null=True, blank=True)

    changed = models.DateTimeField(default=timezone.now)
    deleted = models.DateTimeField(null=True, blank=True, db_index=True)
    readonly = models.BooleanField(default=False)

    class Meta:
        verbose_name = "Node"
        verbose_name_plural = "Nodes"
        constraints = [
            models.UniqueConstraint(
                fields=["owner", "parent", "name"],
                condition=Q(deleted__isnull=True),
                name="unique_active_child_name",
            ),
            # NULL parents never collide in the constraint above
            models.UniqueConstraint(
                fields=["owner", "name"],
                condition=Q(deleted__isnull=True, parent__isnull=True),
                name="unique_active_root_name",
            ),
        ]
        indexes = [
            models.Index(fields=["owner", "parent"], name="node_owner_parent_idx"),
        ]
        ordering = ["name"]

    def __str__(self):
        return f"{self.owner_id}: {self.name}"

    @property
    def is_deleted(self) -> bool:
        return self.deleted is not None

    @property
    def is_mount(self) -> bool:
        return self.is_directory and self.storage_adapter == self.ADAPTER_SMB

    @property
    def is_mirrored(self) -> bool:
        return self.storage_reference_id is not None

    def get_path(self) -> str:
        """Slash separated path from the owner's root, e.g. "/docs/a.txt"."""
        names = []
        node = self
        while node is not None:
            names.append(node.name)
            node = node.parent
        return "/" + "/".join(reversed(names))


class FileVersion(AbstractBaseModel):
    """One entry in a file's content history."""

    TYPE_ADD = "add"
    TYPE_UPDATE = "update"
    TYPE_RESTORE = "restore"
    TYPE_CHOICES = [
        (TYPE_ADD, "Added"),
        (TYPE_UPDATE, "Updated"),
        (TYPE_RESTORE, "Restored"),
    ]

    node = models.ForeignKey(Node, on_delete=models.CASCADE, related_name="history")
    version = models.PositiveIntegerField()
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    size = models.BigIntegerField(default=0)
    hash = models.CharField(max_length=32, blank=True)
    storage_path = models.CharField(max_length=1024, blank=True)
    changed = models.DateTimeField(default=timezone.now)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        unique_together = ["node", "version"]
        ordering = ["version"]

    def __str__(self):
        return f"{self.node_id} v{self.version} ({self.type})"


def default_session_expiry():
    return timezone.now() + timedelta(hours=settings.CIRRUS_UPLOAD_SESSION_TTL_HOURS)


class UploadSession(AbstractBaseModel):
    """
    Accumulator for an in-progress upload.

    Bytes are appended to ``temp_path`` chunk by chunk. The session is
    finalized once ``hash`` is set; after that no more bytes are accepted.
    A completed chunked upload keeps its row, pointing at the stored file,
    so a client retrying the last chunk learns the outcome.
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="upload_sessions",
    )
    size = models.BigIntegerField(default=0)
    chunks_received = models.PositiveIntegerField(default=0)
    total_chunks = models.PositiveIntegerField(
        default=0, help_text="Declared number of chunks (0 = single-shot upload)"
    )
    temp_path = models.CharField(max_length=1024)
    hash = models.CharField(max_length=32, null=True, blank=True)
    # File the completed upload was stored in, kept until the session expires
    node = models.ForeignKey(
        Node,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    expires_at = models.DateTimeField(default=default_session_expiry, db_index=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.owner_id}: session {self.id} ({self.size} bytes)"

    @property
    def is_finalized(self) -> bool:
        return self.hash is not None

    def is_expired(self) -> bool:
        return timezone.now() > self.expires_at

    @property
    def is_completed(self) -> bool:
        return self.is_finalized and self.node_id is not None

    @property
    def chunks_left(self) -> int:
        return max(0, self.total_chunks - self.chunks_received)
