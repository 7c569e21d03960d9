"""Signal handlers for node change logging."""

import logging
from typing import Any, Optional

from django.dispatch import receiver

from .models import Node
from .signals import node_changed

# Separate audit logger for tree changes
audit_logger = logging.getLogger("cirrus.audit")


@receiver(node_changed)
def log_node_change(
    sender: Any,
    node: Node,
    user: Optional[Any],
    action: str,
    **kwargs: Any,
) -> None:
    """Log every tree change for external monitoring."""
    kind = "COLLECTION" if node.is_directory else "FILE"
    performer = user.pk if user is not None else "system"
    mirrored = f" mount={node.storage_reference_id}" if node.is_mirrored else ""

    audit_logger.info(
        f"{kind}_{action.upper()} "
        f"node={node.pk} "
        f"owner={node.owner_id} "
        f"performed_by={performer} "
        f"name={node.name} "
        f"version={node.version}"
        f"{mirrored}"
    )
