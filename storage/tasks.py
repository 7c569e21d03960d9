"""
Background tasks for storage app.

Uses Django 6.0 Tasks framework. The configured backend delivers jobs at
least once, so every task tolerates being run again for work that already
completed.
"""

import logging
from dataclasses import asdict
from typing import Optional

from django.contrib.auth import get_user_model
from django.tasks import task

from core.exceptions import NodeNotFound
from core.services.smb_sync import ADDED, SmbScanner

from .models import Node
from .services import NodeService

logger = logging.getLogger("cirrus.jobs")
User = get_user_model()


@task(takes_context=True)
def delete_node(context, owner_id: int, node_id: str, force: bool = False):
    """
    Delete a node and its subtree on behalf of its owner.

    Args:
        context: TaskContext (automatic from Django Tasks)
        owner_id: ID of the user owning the node
        node_id: Node primary key
        force: Remove bytes and rows instead of soft deleting

    Returns:
        dict: Outcome, "skipped" when the node is already gone
    """
    logger.info(
        f"Delete node task started: node_id={node_id}, owner_id={owner_id}, "
        f"force={force}, attempt={context.attempt}"
    )

    try:
        try:
            owner = User.objects.get(id=owner_id)
        except User.DoesNotExist:
            error_msg = f"User not found: {owner_id}"
            logger.error(error_msg)
            return {"status": "error", "error": error_msg}

        service = NodeService(owner)
        try:
            node = service.get_node(node_id, include_deleted=force)
        except NodeNotFound:
            logger.info(f"Node {node_id} already deleted, nothing to do")
            return {"status": "skipped", "node_id": node_id}

        service.delete(node, force=force, user=owner)

        logger.info(f"Delete node task completed: node_id={node_id}, force={force}")
        return {"status": "success", "node_id": node_id, "force": force}

    except Exception as e:
        logger.error(f"Delete node task failed: {e}", exc_info=True)
        raise  # Django Tasks will capture traceback


@task(takes_context=True)
def smb_scan(
    context,
    mount_id: str,
    path: Optional[str] = None,
    action: str = ADDED,
    recursive: bool = True,
):
    """
    Reconcile the local mirror of an SMB mount with the share.

    Args:
        context: TaskContext (automatic from Django Tasks)
        mount_id: Primary key of the mount collection
        path: Remote path relative to the mount root, None for the root
        action: Change notification action that triggered the scan
        recursive: Descend into directories

    Returns:
        dict: SmbScanStats as dictionary
    """
    logger.info(
        f"SMB scan task started: mount_id={mount_id}, path={path}, action={action}, "
        f"recursive={recursive}, attempt={context.attempt}"
    )

    try:
        mount = (
            Node.objects.filter(
                pk=mount_id,
                storage_adapter=Node.ADAPTER_SMB,
                is_directory=True,
                deleted__isnull=True,
            )
            .select_related("owner")
            .first()
        )
        if mount is None:
            error_msg = f"Mount not found: {mount_id}"
            logger.error(error_msg)
            return {"status": "error", "error": error_msg}

        stats = SmbScanner(mount).scan(path=path, action=action, recursive=recursive)

        result = {"status": "success", "mount_id": str(mount.pk), "path": path or ""}
        result.update(asdict(stats))

        logger.info(
            f"SMB scan completed: mount_id={mount_id}, "
            f"created={stats.nodes_created}, updated={stats.nodes_updated}, "
            f"deleted={stats.nodes_deleted}, errors={len(stats.errors)}"
        )
        return result

    except Exception as e:
        logger.error(f"SMB scan failed: {e}", exc_info=True)
        raise  # Django Tasks will capture traceback
