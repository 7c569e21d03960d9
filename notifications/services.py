"""Persistence for notifications and node subscriptions."""

import logging
from typing import Iterable, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from storage.models import Node

from .exceptions import NotificationNotFound
from .models import Notification, Subscription

logger = logging.getLogger(__name__)


# =============================================================================
# Notifications
# =============================================================================


def post_notification(receiver, sender, message, context: Optional[dict] = None) -> Notification:
    """Store ``message`` in the receiver's inbox."""
    return Notification.objects.create(
        receiver=receiver,
        sender=sender,
        subject=message.subject,
        body=message.body,
        context=context or {},
    )


def get_notifications(
    user,
    offset: int = 0,
    limit: Optional[int] = None,
) -> tuple[list[Notification], int]:
    """
    Page through a user's inbox, newest first.

    Returns:
        (notifications, total number of notifications of the user)
    """
    queryset = Notification.objects.filter(receiver=user)
    total = queryset.count()
    end = offset + limit if limit is not None else None
    return list(queryset[offset:end]), total


def get_notification(user, notification_id) -> Notification:
    try:
        return Notification.objects.get(pk=notification_id, receiver=user)
    except (Notification.DoesNotExist, ValidationError, ValueError):
        raise NotificationNotFound(f"notification {notification_id} not found")


def delete_notification(user, notification_id) -> None:
    notification = get_notification(user, notification_id)
    notification.delete()
    logger.debug(f"Notification {notification_id} removed from user {user.pk}")


# =============================================================================
# Subscriptions
# =============================================================================


def subscribe_node(
    user,
    node: Node,
    subscribe: bool = True,
    exclude_me: bool = True,
    recursive: bool = False,
) -> Optional[Subscription]:
    """
    Subscribe to (or unsubscribe from) changes of ``node``.

    A recursive subscription on a collection is applied to every node below
    it as well. Unsubscribing a collection removes those subscriptions too.

    Returns:
        The subscription of ``node``, None after unsubscribing
    """
    from storage.services import NodeService

    nodes = [node]
    if node.is_directory and (recursive or not subscribe):
        nodes = list(NodeService(node.owner).iter_subtree(node))

    if not subscribe:
        logger.debug(f"User {user.pk} unsubscribes node {node.pk}")
        Subscription.objects.filter(user=user, node__in=nodes).delete()
        return None

    logger.debug(f"User {user.pk} subscribes node {node.pk} (recursive={recursive})")
    with transaction.atomic():
        for target in nodes:
            subscription, _ = Subscription.objects.update_or_create(
                user=user,
                node=target,
                defaults={"exclude_me": exclude_me, "recursive": recursive},
            )
            if target.pk == node.pk:
                result = subscription

    return result


def get_subscription(user, node: Node) -> Optional[Subscription]:
    return Subscription.objects.filter(user=user, node=node).first()


def get_subscriptions(node: Node) -> QuerySet:
    return Subscription.objects.filter(node=node).select_related("user")


def throttle_subscriptions(node: Node, user_ids: Iterable) -> int:
    """Stamp ``last_notification`` on the node's subscriptions of ``user_ids``."""
    return Subscription.objects.filter(node=node, user_id__in=list(user_ids)).update(
        last_notification=timezone.now()
    )
