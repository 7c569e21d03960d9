from django.conf import settings
from django.db import models

from core.models import AbstractBaseModel


class Notification(AbstractBaseModel):
    """A message delivered to a user's notification inbox."""

    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    subject = models.CharField(max_length=255)
    body = models.TextField(blank=True)
    context = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["receiver", "-created_at"], name="notification_receiver_idx"),
        ]

    def __str__(self):
        return f"{self.receiver_id}: {self.subject}"


class Subscription(AbstractBaseModel):
    """A user's request to be notified about changes to a node."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="subscriptions",
    )
    node = models.ForeignKey(
        "storage.Node",
        on_delete=models.CASCADE,
        related_name="subscriptions",
    )
    exclude_me = models.BooleanField(
        default=True, help_text="Skip notifications for the user's own changes"
    )
    recursive = models.BooleanField(
        default=False, help_text="Also notify about changes below this collection"
    )
    last_notification = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "node"], name="unique_user_node_subscription"),
        ]

    def __str__(self):
        return f"{self.user_id} -> {self.node_id}"
