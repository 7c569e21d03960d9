"""Signal handlers notifying node subscribers."""

import logging
from datetime import timedelta
from typing import Any, Optional

from django.conf import settings
from django.db.models import Q
from django.dispatch import receiver
from django.utils import timezone

from storage.models import Node
from storage.signals import node_changed

from .models import Subscription
from .notifier import Message, get_notifier
from .services import throttle_subscriptions

logger = logging.getLogger(__name__)

ACTION_VERBS = {
    "add": "added",
    "update": "updated",
    "restore": "restored",
    "delete": "deleted",
}


def _ancestor_ids(node: Node) -> list:
    ids = []
    parent_id = node.parent_id
    while parent_id is not None:
        ids.append(parent_id)
        parent_id = Node.objects.filter(pk=parent_id).values_list("parent_id", flat=True).first()
    return ids


@receiver(node_changed)
def notify_subscribers(
    sender: Any,
    node: Node,
    user: Optional[Any],
    action: str,
    **kwargs: Any,
) -> None:
    """
    Notify users subscribed to ``node`` or recursively to one of its parents.

    Subscriptions notified within CIRRUS_NOTIFICATION_THROTTLE_SECONDS are
    skipped, as are the actor's own subscriptions when exclude_me is set.
    """
    subscriptions = Subscription.objects.filter(
        Q(node=node) | Q(node_id__in=_ancestor_ids(node), recursive=True)
    ).select_related("user")

    threshold = timezone.now() - timedelta(seconds=settings.CIRRUS_NOTIFICATION_THROTTLE_SECONDS)
    receivers = {}
    direct_user_ids = []
    inherited_ids = []

    for subscription in subscriptions:
        if subscription.exclude_me and user is not None and subscription.user_id == user.pk:
            continue
        if subscription.last_notification is not None and subscription.last_notification > threshold:
            continue

        receivers.setdefault(subscription.user_id, subscription.user)
        if subscription.node_id == node.pk:
            direct_user_ids.append(subscription.user_id)
        else:
            inherited_ids.append(subscription.pk)

    if not receivers:
        return

    verb = ACTION_VERBS.get(action, action)
    kind = "collection" if node.is_directory else "file"
    actor = user.get_username() if user is not None else "the server"
    message = Message(
        subject=f"The {kind} {node.name} has been {verb}",
        body=f"The {kind} {node.get_path()} has been {verb} by {actor}.",
    )
    context = {"node": str(node.pk), "action": action}

    logger.debug(f"Notify {len(receivers)} subscribers about {action} of node {node.pk}")
    if not get_notifier().notify(receivers.values(), user, message, context):
        return

    throttle_subscriptions(node, direct_user_ids)
    if inherited_ids:
        Subscription.objects.filter(pk__in=inherited_ids).update(last_notification=timezone.now())
