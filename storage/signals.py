"""Django signals for storage app node events."""

from django.dispatch import Signal

# Fired after a node was created, changed or deleted
#
# Arguments:
#   sender: Class that performed the change (NodeService)
#   node: Node affected (hard deletes fire right before the rows are removed)
#   user: User who performed the change, None for background sync
#   action: str - one of NODE_ACTION_* below
node_changed = Signal()

NODE_ACTION_ADD = "add"
NODE_ACTION_UPDATE = "update"
NODE_ACTION_RESTORE = "restore"
NODE_ACTION_DELETE = "delete"
