"""
SMB Mount Reconciliation Service.

The share is the source of truth: the scanner walks a remote directory and
the local node tree of a mount side by side and inserts, refreshes or
deletes local nodes until both agree. Local changes go through the
blackhole adapter, so reconciliation never writes to the share.

Usage:
    scanner = SmbScanner(mount)
    stats = scanner.scan(path="projects/2024", action=ADDED)
"""

import logging
import sys
from dataclasses import dataclass, field
from typing import List, Optional

from django.conf import settings

from core.exceptions import InvalidArgument, NodeNotFound
from core.storage.base import AbstractStorageBackend, FileInfo
from core.storage.blackhole import BlackholeStorageBackend
from core.storage.smb import SmbStorageBackend
from core.utils import PathValidationError, normalize_name, normalize_path

from .upload import UploadSessionService

logger = logging.getLogger(__name__)

# Change notification actions, as reported by an SMB change watcher
ADDED = "added"
REMOVED = "removed"
MODIFIED = "modified"
RENAMED_OLD = "renamed_old"
RENAMED_NEW = "renamed_new"
ACTIONS = (ADDED, REMOVED, MODIFIED, RENAMED_OLD, RENAMED_NEW)

ROOT_PATHS = ("", ".", "/")


@dataclass
class SmbScanStats:
    """Statistics from one reconciliation run."""
    directories_seen: int = 0
    files_seen: int = 0
    nodes_created: int = 0
    nodes_updated: int = 0
    nodes_deleted: int = 0
    errors: List[str] = field(default_factory=list)


class SmbScanner:
    """
    Reconcile the local mirror of an SMB mount with the share.

    Args:
        mount: Mount collection (Node with storage_adapter "smb")
        backend: Storage backend reading the share, defaults to one built
            from the mount options
        sessions: Upload session service used to pull remote bytes, by
            default one without a size cap
    """

    def __init__(
        self,
        mount,
        backend: Optional[AbstractStorageBackend] = None,
        sessions: Optional[UploadSessionService] = None,
    ):
        from storage.services import NodeService

        if not mount.is_mount:
            raise InvalidArgument(f"node {mount.pk} is not an SMB mount")

        self.mount = mount
        self.backend = backend or SmbStorageBackend.from_options(mount.mount_options)
        self.sessions = sessions or UploadSessionService(max_size=sys.maxsize)
        self.service = NodeService(mount.owner, sessions=self.sessions)
        self.dummy = BlackholeStorageBackend()
        self.system_folder = (mount.mount_options or {}).get(
            "system_folder", settings.CIRRUS_SMB_SYSTEM_FOLDER
        )

    def scan(
        self,
        path: Optional[str] = None,
        action: str = ADDED,
        recursive: bool = True,
    ) -> SmbScanStats:
        """
        Reconcile ``path`` (relative to the mount root) with the local tree.

        Args:
            path: Remote path, None or one of "", ".", "/" for the mount root
            action: Change that triggered the scan (one of ACTIONS)
            recursive: Descend into directories

        Returns:
            SmbScanStats with operation results

        Raises:
            InvalidArgument: Unknown action or malformed path
            NodeNotFound: Parent chain missing locally for a REMOVED action
        """
        if action not in ACTIONS:
            raise InvalidArgument(f"Invalid action: {action}")

        if path is None or path in ROOT_PATHS:
            path = ""
        try:
            path = normalize_path(path)
        except PathValidationError as e:
            raise InvalidArgument(str(e))

        self.action = action
        self.recursive = recursive
        stats = SmbScanStats()

        logger.info(
            f"Scanning SMB mount {self.mount.pk} at '/{path}' "
            f"(action={action}, recursive={recursive})"
        )

        parent = self.mount
        if path:
            parent = self._get_parent(path.rsplit("/", 1)[0] if "/" in path else "", stats)

        self._walk(parent, path, stats)

        logger.info(
            f"Scan of mount {self.mount.pk} finished: {stats.directories_seen} directories, "
            f"{stats.files_seen} files, {stats.nodes_created} created, "
            f"{stats.nodes_updated} updated, {stats.nodes_deleted} deleted, "
            f"{len(stats.errors)} errors"
        )
        return stats

    def _get_parent(self, parent_path: str, stats: SmbScanStats):
        """Resolve the local collection for ``parent_path``, creating missing ones."""
        parent = self.mount
        sub = ""

        for name in filter(None, parent_path.split("/")):
            sub = f"{sub}/{name}" if sub else name
            child = self.service.find_child(parent, name, is_directory=True)
            if child is not None:
                parent = child
                continue

            if self.action == REMOVED:
                raise NodeNotFound(f"collection '{sub}' does not exist in mount {self.mount.pk}")

            logger.debug(f"Collection '{sub}' does not exist yet, adding it")
            parent = self._add_directory(parent, self.backend.info(sub), stats)

        return parent

    def _is_system_path(self, path: str) -> bool:
        return bool(self.system_folder) and path.rsplit("/", 1)[-1] == self.system_folder

    def _attributes(self, info: FileInfo) -> dict:
        return {
            "created": info.modified_at,
            "changed": info.modified_at,
            "storage_reference": self.mount,
        }

    def _walk(self, parent, path: str, stats: SmbScanStats, info: Optional[FileInfo] = None) -> None:
        logger.debug(
            f"Sync SMB path '/{path}' in mount {self.mount.pk} "
            f"mapped to collection {parent.get_path()}"
        )

        if path and self._is_system_path(path):
            return

        if info is None:
            try:
                info = self.backend.info(path)
            except FileNotFoundError:
                if self.action == REMOVED and path:
                    node = self.service.find_child(parent, path.rsplit("/", 1)[-1])
                    if node is not None:
                        self._delete(node, stats)
                return

        if not info.is_directory:
            stats.files_seen += 1
            self._sync_file(parent, info, stats)
            return

        stats.directories_seen += 1
        collection = parent if not path else self._get_directory(parent, info, stats)

        if not self.recursive:
            return

        listed = set()
        for entry in self.backend.list(path):
            if self._is_system_path(entry.path):
                continue

            listed.add(normalize_name(entry.name))
            try:
                self._walk(collection, entry.path, stats, info=entry)
            except Exception as e:
                logger.error(f"Failed to sync '{entry.path}' in mount {self.mount.pk}: {e}", exc_info=True)
                stats.errors.append(f"Error syncing {entry.path}: {e}")

        for child in self.service.get_children(collection):
            if child.name in listed:
                continue
            try:
                self._delete(child, stats)
            except Exception as e:
                logger.error(f"Failed to remove {child.get_path()} from mount {self.mount.pk}: {e}", exc_info=True)
                stats.errors.append(f"Error removing {child.get_path()}: {e}")

    def _get_directory(self, parent, info: FileInfo, stats: SmbScanStats):
        existing = self.service.find_child(parent, info.name, include_deleted=True)
        if existing is not None:
            if existing.is_directory:
                if existing.is_deleted:
                    self._revive(existing, stats)
                return existing
            logger.debug(f"'{info.path}' turned from a file into a directory")
            self._delete(existing, stats)

        return self._add_directory(parent, info, stats)

    def _add_directory(self, parent, info: FileInfo, stats: SmbScanStats):
        node = self.service.add_directory(
            parent,
            info.name,
            attributes=self._attributes(info),
            backend=self.dummy,
            storage_path=info.path,
        )
        stats.nodes_created += 1
        return node

    def _sync_file(self, parent, info: FileInfo, stats: SmbScanStats) -> None:
        existing = self.service.find_child(parent, info.name, include_deleted=True)
        if existing is not None and existing.is_directory:
            logger.debug(f"'{info.path}' turned from a directory into a file")
            self._delete(existing, stats)
            existing = None

        if existing is not None and not self._update_required(existing, info):
            if existing.is_deleted:
                self._revive(existing, stats)
            return

        session = self._pull(info)
        try:
            self._store(parent, existing, info, session, stats)
        except Exception:
            self.sessions.discard(session)
            raise

    def _store(self, parent, existing, info: FileInfo, session, stats: SmbScanStats) -> None:
        if existing is None:
            self.service.add_file(
                parent,
                info.name,
                session=session,
                attributes=self._attributes(info),
                backend=self.dummy,
                storage_path=info.path,
            )
            stats.nodes_created += 1
        else:
            self.service.set_content(
                existing,
                session,
                attributes=self._attributes(info),
                backend=self.dummy,
                storage_path=info.path,
            )
            stats.nodes_updated += 1

    def _update_required(self, node, info: FileInfo) -> bool:
        return node.size != info.size or node.changed != info.modified_at

    def _pull(self, info: FileInfo):
        """Copy remote bytes into an upload session to fingerprint them."""
        with self.backend.open(info.path) as stream:
            return self.sessions.store_temporary_file(stream, self.mount.owner)

    def _revive(self, node, stats: SmbScanStats) -> None:
        # Still on the share, so a soft delete in the mirror does not stick
        logger.debug(f"Reviving {node.get_path()}, still on the share")
        self.service.undelete(node)
        stats.nodes_updated += 1

    def _delete(self, node, stats: SmbScanStats) -> None:
        logger.debug(f"Removing {node.get_path()}, no longer on the share")
        self.service.delete(node, force=True, backend=self.dummy)
        stats.nodes_deleted += 1
