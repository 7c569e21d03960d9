"""Service layer for node tree operations.

NodeService is bound to one owner and performs every mutation of that
owner's tree: collections, files, content versions, mounts and deletion.
Views, tasks and the SMB scanner share this implementation.
"""

import logging
import mimetypes
from dataclasses import dataclass
from io import BytesIO
from typing import Any, BinaryIO, Iterable, Optional, Union

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import F, QuerySet
from django.utils import timezone

from core.exceptions import (
    InvalidArgument,
    NodeConflict,
    NodeNotFound,
    NodeReadonly,
    VersionNotFound,
)
from core.services.upload import UploadSessionService
from core.storage import AbstractStorageBackend, BlackholeStorageBackend, LocalStorageBackend
from core.storage.smb import SmbStorageBackend
from core.utils import (
    PathValidationError,
    join_path,
    numbered_name,
    parent_of,
    validate_filename,
)

from .models import FileVersion, Node, UploadSession
from .signals import (
    NODE_ACTION_ADD,
    NODE_ACTION_DELETE,
    NODE_ACTION_RESTORE,
    NODE_ACTION_UPDATE,
    node_changed,
)

User = get_user_model()
logger = logging.getLogger(__name__)

CONFLICT_OVERWRITE = 0
CONFLICT_RENAME = 1

REQUIRED_MOUNT_OPTIONS = ("host", "share")

# Attributes callers may set on nodes besides content
SETTABLE_ATTRIBUTES = frozenset(["changed", "readonly", "storage_reference", "content_type"])


@dataclass
class PartialUpload:
    """Result of a chunk upload that still waits for more chunks."""

    session: UploadSession
    chunks_left: int


def get_local_storage_path(node: Node, version: int) -> str:
    """Backend path of one content version of a locally stored file."""
    return f"{node.owner_id}/{node.pk}/{version}"


class NodeService:
    """Tree operations for one owner."""

    def __init__(
        self,
        user: User,
        sessions: Optional[UploadSessionService] = None,
        backend: Optional[AbstractStorageBackend] = None,
    ):
        self.user = user
        self.sessions = sessions or UploadSessionService()
        self._local_backend = backend

    # =========================================================================
    # Lookup
    # =========================================================================

    def _nodes(self, include_deleted: bool = False) -> QuerySet:
        queryset = Node.objects.filter(owner=self.user)
        if not include_deleted:
            queryset = queryset.filter(deleted__isnull=True)
        return queryset

    def get_node(
        self,
        node_id,
        include_deleted: bool = False,
        is_directory: Optional[bool] = None,
    ) -> Node:
        """
        Load a node of this owner.

        Raises:
            NodeNotFound: Unknown id, foreign owner, deleted (unless
                include_deleted) or of the wrong type
        """
        queryset = self._nodes(include_deleted)
        if is_directory is not None:
            queryset = queryset.filter(is_directory=is_directory)

        try:
            return queryset.get(pk=node_id)
        except (Node.DoesNotExist, ValidationError, ValueError):
            raise NodeNotFound(f"node {node_id} not found")

    def get_children(self, parent: Optional[Node], include_deleted: bool = False) -> QuerySet:
        """Children of ``parent`` (top-level nodes when parent is None)."""
        return self._nodes(include_deleted).filter(parent=parent)

    def find_child(
        self,
        parent: Optional[Node],
        name: str,
        include_deleted: bool = False,
        is_directory: Optional[bool] = None,
    ) -> Optional[Node]:
        queryset = self.get_children(parent, include_deleted).filter(name=validate_filename(name))
        if is_directory is not None:
            queryset = queryset.filter(is_directory=is_directory)

        # The active node first, then the most recently deleted one
        return queryset.order_by(F("deleted").desc(nulls_first=True)).first()

    def get_child(
        self,
        parent: Optional[Node],
        name: str,
        include_deleted: bool = False,
        is_directory: Optional[bool] = None,
    ) -> Node:
        """Child of ``parent`` by (NFC-normalized) name. Raises NodeNotFound."""
        try:
            node = self.find_child(parent, name, include_deleted, is_directory)
        except PathValidationError as e:
            raise InvalidArgument(str(e))

        if node is None:
            raise NodeNotFound(f"node {name} not found")
        return node

    def child_exists(
        self,
        parent: Optional[Node],
        name: str,
        include_deleted: bool = False,
        is_directory: Optional[bool] = None,
    ) -> bool:
        try:
            return self.find_child(parent, name, include_deleted, is_directory) is not None
        except PathValidationError:
            return False

    def get_history(self, node: Node) -> list[FileVersion]:
        """Content history of a file, oldest first."""
        if node.is_directory:
            raise InvalidArgument("collections have no content history")
        return list(node.history.all())

    # =========================================================================
    # Storage backend resolution
    # =========================================================================

    def get_mount(self, node: Optional[Node]) -> Optional[Node]:
        """Mount collection ``node`` belongs to (the node itself for a mount root)."""
        if node is None:
            return None
        if node.is_mount:
            return node
        return node.storage_reference

    def get_remote_path(self, node: Optional[Node]) -> str:
        """Path of a mirrored collection relative to its mount root."""
        if node is None or node.is_mount:
            return ""
        return node.storage_path

    def get_backend(self, node: Optional[Node]) -> AbstractStorageBackend:
        """Storage backend holding the bytes of ``node``."""
        mount = self.get_mount(node)
        if mount is not None:
            return SmbStorageBackend.from_options(mount.mount_options)

        if self._local_backend is None:
            self._local_backend = LocalStorageBackend()
        return self._local_backend

    # =========================================================================
    # Create
    # =========================================================================

    def _check_parent(self, parent: Optional[Node]) -> None:
        if parent is None:
            return
        if not parent.is_directory:
            raise InvalidArgument(f"node {parent.pk} is not a collection")
        if parent.is_deleted:
            raise NodeNotFound(f"collection {parent.pk} is deleted")
        if parent.readonly:
            raise NodeReadonly(f"collection {parent.pk} is readonly")

    def _check_name(self, parent: Optional[Node], name: str) -> str:
        try:
            name = validate_filename(name)
        except PathValidationError as e:
            raise InvalidArgument(str(e))

        if self.child_exists(parent, name):
            raise NodeConflict(f"a node called {name} already exists in this collection")
        return name

    def _apply_attributes(self, node: Node, attributes: Optional[dict[str, Any]]) -> None:
        for key, value in (attributes or {}).items():
            if key in SETTABLE_ATTRIBUTES:
                setattr(node, key, value)

    def _set_created(self, node: Node, attributes: Optional[dict[str, Any]]) -> None:
        # created_at is auto_now_add, so a remote creation time is written afterwards
        created = (attributes or {}).get("created")
        if created is not None:
            Node.objects.filter(pk=node.pk).update(created_at=created)
            node.created_at = created

    def _notify(self, node: Node, action: str, user: Optional[User]) -> None:
        node_changed.send(sender=self.__class__, node=node, user=user, action=action)

    def add_directory(
        self,
        parent: Optional[Node],
        name: str,
        attributes: Optional[dict[str, Any]] = None,
        user: Optional[User] = None,
        backend: Optional[AbstractStorageBackend] = None,
        storage_path: Optional[str] = None,
    ) -> Node:
        """
        Create a collection.

        Inside a mount the directory is created on the share too, unless a
        ``backend`` override (the blackhole adapter during sync) is given.
        """
        self._check_parent(parent)
        name = self._check_name(parent, name)

        node = Node(owner=self.user, parent=parent, name=name, is_directory=True)
        self._apply_attributes(node, attributes)

        mount = self.get_mount(parent)
        if mount is not None:
            node.storage_reference = mount
            node.storage_path = (
                storage_path
                if storage_path is not None
                else join_path(self.get_remote_path(parent), name)
            )
            (backend or self.get_backend(mount)).mkdir(node.storage_path)

        node.save()
        self._set_created(node, attributes)
        logger.debug(f"Created collection {node.get_path()} ({node.pk})")
        self._notify(node, NODE_ACTION_ADD, user)
        return node

    def add_file(
        self,
        parent: Optional[Node],
        name: str,
        session: Optional[UploadSession] = None,
        attributes: Optional[dict[str, Any]] = None,
        user: Optional[User] = None,
        backend: Optional[AbstractStorageBackend] = None,
        storage_path: Optional[str] = None,
    ) -> Node:
        """Create a file, optionally with the content of a finalized ``session``."""
        self._check_parent(parent)
        name = self._check_name(parent, name)

        with transaction.atomic():
            node = Node(
                owner=self.user,
                parent=parent,
                name=name,
                content_type=mimetypes.guess_type(name)[0] or "",
            )
            self._apply_attributes(node, attributes)

            mount = self.get_mount(parent)
            if mount is not None:
                node.storage_reference = mount
                if storage_path is None:
                    storage_path = join_path(self.get_remote_path(parent), name)
                node.storage_path = storage_path

            node.save()
            self._set_created(node, attributes)

            if session is not None:
                node = self._swap_content(
                    node, session, attributes, user, backend, storage_path,
                    FileVersion.TYPE_ADD,
                )

        if session is not None:
            self.sessions.release(session, node)

        logger.debug(f"Created file {node.get_path()} ({node.pk}, v{node.version})")
        self._notify(node, NODE_ACTION_ADD, user)
        return node

    def create_mount(
        self,
        parent: Optional[Node],
        name: str,
        options: dict[str, Any],
        user: Optional[User] = None,
        scan: bool = True,
    ) -> Node:
        """
        Create a collection that mirrors an SMB share.

        The initial reconciliation runs as a background job once the mount
        row is committed.
        """
        from .tasks import smb_scan

        missing = [key for key in REQUIRED_MOUNT_OPTIONS if not options.get(key)]
        if missing:
            raise InvalidArgument(f"mount options missing: {', '.join(missing)}")

        if self.get_mount(parent) is not None:
            raise InvalidArgument("mounts can not be nested inside another mount")

        self._check_parent(parent)
        name = self._check_name(parent, name)

        options = dict(options)
        options.setdefault("system_folder", settings.CIRRUS_SMB_SYSTEM_FOLDER)

        node = Node.objects.create(
            owner=self.user,
            parent=parent,
            name=name,
            is_directory=True,
            storage_adapter=Node.ADAPTER_SMB,
            mount_options=options,
        )
        logger.info(f"Created SMB mount {node.get_path()} -> \\\\{options['host']}\\{options['share']}")
        self._notify(node, NODE_ACTION_ADD, user)

        if scan:
            mount_id = str(node.pk)
            transaction.on_commit(lambda: smb_scan.enqueue(mount_id=mount_id))

        return node

    # =========================================================================
    # Content
    # =========================================================================

    def set_content(
        self,
        node: Node,
        session: UploadSession,
        attributes: Optional[dict[str, Any]] = None,
        user: Optional[User] = None,
        backend: Optional[AbstractStorageBackend] = None,
        storage_path: Optional[str] = None,
    ) -> Node:
        """
        Replace the content of a file with the bytes of ``session``.

        The version bump, history entry and node update commit together; the
        session is released afterwards. Content identical to the current
        version only updates attributes.

        Raises:
            InvalidArgument: Node is a collection
            NodeReadonly: Node is readonly
        """
        if node.is_directory:
            raise InvalidArgument(f"node {node.pk} is a collection")
        if node.readonly:
            raise NodeReadonly(f"file {node.pk} is readonly")
        if node.is_deleted and self.child_exists(node.parent, node.name):
            raise NodeConflict(f"a node called {node.name} already exists in this collection")

        version_type = FileVersion.TYPE_ADD if node.version == 0 else FileVersion.TYPE_UPDATE
        previous_version = node.version

        with transaction.atomic():
            node = Node.objects.select_for_update().get(pk=node.pk)
            node = self._swap_content(
                node, session, attributes, user, backend, storage_path, version_type
            )

        self.sessions.release(session, node)

        if node.version != previous_version:
            self._notify(node, NODE_ACTION_UPDATE, user)
        return node

    def _swap_content(
        self,
        node: Node,
        session: UploadSession,
        attributes: Optional[dict[str, Any]],
        user: Optional[User],
        backend: Optional[AbstractStorageBackend],
        storage_path: Optional[str],
        version_type: str,
    ) -> Node:
        digest = self.sessions.finalize(session)
        changed = (attributes or {}).get("changed") or timezone.now()
        self._apply_attributes(node, attributes)
        node.changed = changed
        node.deleted = None

        if node.version > 0 and node.hash == digest and node.size == session.size:
            logger.debug(f"Content of {node.pk} unchanged, updating attributes only")
            node.save()
            return node

        version = node.version + 1
        if storage_path is None:
            storage_path = node.storage_path if node.is_mirrored else get_local_storage_path(node, version)

        backend = backend or self.get_backend(node)
        directory = parent_of(storage_path)
        if directory and not node.is_mirrored:
            backend.mkdir(directory)

        with self.sessions.open(session) as content:
            backend.save(storage_path, content)

        node.version = version
        node.size = session.size
        node.hash = digest
        node.storage_path = storage_path
        node.save()

        FileVersion.objects.create(
            node=node,
            version=version,
            type=version_type,
            size=node.size,
            hash=digest,
            storage_path=storage_path,
            changed=changed,
            user=user,
        )
        logger.info(f"Stored version {version} of {node.get_path()} ({node.size} bytes)")
        return node

    def restore(self, node: Node, version: int, user: Optional[User] = None) -> Node:
        """
        Make an older version the current content as a new version.

        Raises:
            VersionNotFound: Version is not in the history
            InvalidArgument: Version is already current, or the file is mirrored
            NodeReadonly: File is readonly
        """
        if node.is_directory:
            raise InvalidArgument("collections have no content history")
        if node.is_mirrored:
            raise InvalidArgument("mirrored files keep no content history to restore")
        if node.readonly:
            raise NodeReadonly(f"file {node.pk} is readonly")

        entry = node.history.filter(version=version).first()
        if entry is None:
            raise VersionNotFound(f"version {version} of {node.pk} not found")
        if entry.version == node.version:
            raise InvalidArgument(f"version {version} is already the current version")

        with transaction.atomic():
            node = Node.objects.select_for_update().get(pk=node.pk)
            node.version += 1
            node.size = entry.size
            node.hash = entry.hash
            node.storage_path = entry.storage_path
            node.changed = timezone.now()
            node.save()

            FileVersion.objects.create(
                node=node,
                version=node.version,
                type=FileVersion.TYPE_RESTORE,
                size=entry.size,
                hash=entry.hash,
                storage_path=entry.storage_path,
                changed=node.changed,
                user=user,
            )

        logger.info(f"Restored version {version} of {node.get_path()} as v{node.version}")
        self._notify(node, NODE_ACTION_RESTORE, user)
        return node

    def open_content(self, node: Node) -> BinaryIO:
        """Readable stream of the current content."""
        if node.is_directory:
            raise InvalidArgument(f"node {node.pk} is a collection")
        if node.version == 0:
            return BytesIO(b"")

        try:
            return self.get_backend(node).open(node.storage_path)
        except FileNotFoundError:
            raise NodeNotFound(f"content of {node.pk} is missing from storage")

    # =========================================================================
    # Delete
    # =========================================================================

    def _descendant_ids(self, node: Node) -> list:
        ids = []
        frontier = [node.pk]
        while frontier:
            frontier = list(Node.objects.filter(parent_id__in=frontier).values_list("pk", flat=True))
            ids.extend(frontier)
        return ids

    def delete(
        self,
        node: Node,
        force: bool = False,
        backend: Optional[AbstractStorageBackend] = None,
        user: Optional[User] = None,
    ) -> None:
        """
        Delete a node and its subtree.

        Soft delete stamps ``deleted`` on the node and every descendant.
        ``force`` removes the bytes of every version and the rows. Removing
        a mount root never touches the share.
        """
        if node.readonly:
            raise NodeReadonly(f"node {node.pk} is readonly")

        if not force:
            if node.is_deleted:
                return
            now = timezone.now()
            with transaction.atomic():
                ids = [node.pk, *self._descendant_ids(node)]
                Node.objects.filter(pk__in=ids, deleted__isnull=True).update(deleted=now)
            node.deleted = now
            logger.info(f"Soft deleted {node.get_path()} and {len(ids) - 1} descendants")
            self._notify(node, NODE_ACTION_DELETE, user)
            return

        if node.is_mount:
            backend = BlackholeStorageBackend()

        # Receivers still read the subtree rows
        self._notify(node, NODE_ACTION_DELETE, user)
        node_id = node.pk
        self._destroy(node, backend)
        logger.info(f"Deleted {node.name} ({node_id}) permanently")

    def undelete(self, node: Node, user: Optional[User] = None) -> Node:
        """Clear the soft delete mark of ``node``; descendants keep theirs."""
        if not node.is_deleted:
            return node
        if self.child_exists(node.parent, node.name):
            raise NodeConflict(f"a node called {node.name} already exists in this collection")

        node.deleted = None
        node.save(update_fields=["deleted", "updated_at"])
        logger.info(f"Undeleted {node.get_path()}")
        self._notify(node, NODE_ACTION_RESTORE, user)
        return node

    def _destroy(self, node: Node, backend: Optional[AbstractStorageBackend]) -> None:
        for child in Node.objects.filter(parent=node):
            self._destroy(child, backend)

        node_backend = backend or self.get_backend(node)
        if node.is_directory:
            if node.is_mirrored:
                self._remove_blob(node_backend, node.storage_path)
        else:
            paths = {node.storage_path} if node.version > 0 else set()
            paths.update(node.history.values_list("storage_path", flat=True))
            for path in sorted(paths):
                self._remove_blob(node_backend, path)
            if not node.is_mirrored:
                self._remove_blob(node_backend, f"{node.owner_id}/{node.pk}")

        node.delete()

    def _remove_blob(self, backend: AbstractStorageBackend, path: str) -> None:
        if not path:
            return
        try:
            backend.delete(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove {path} from {backend.adapter_name} storage: {e}")

    # =========================================================================
    # Uploads
    # =========================================================================

    def put(
        self,
        stream: BinaryIO,
        id=None,
        collection=None,
        name: Optional[str] = None,
        attributes: Optional[dict[str, Any]] = None,
        conflict: int = CONFLICT_OVERWRITE,
    ) -> tuple[Node, bool]:
        """
        Upload a whole file in one request.

        Returns:
            (node, created)
        """
        session = self.sessions.store_temporary_file(stream, self.user)
        return self._put_session(session, id, collection, name, attributes, conflict)

    def put_chunk(
        self,
        stream: BinaryIO,
        session_id=None,
        id=None,
        collection=None,
        name: Optional[str] = None,
        index: int = 1,
        chunks: int = 0,
        size: int = 0,
        attributes: Optional[dict[str, Any]] = None,
        conflict: int = CONFLICT_OVERWRITE,
    ) -> Union[PartialUpload, tuple[Node, bool]]:
        """
        Upload one chunk of a file.

        Returns a PartialUpload until every chunk arrived, then the
        (node, created) result of the completed upload. A chunk repeated
        after the upload completed answers with the stored file, reported
        as not created.
        """
        session = None
        if session_id:
            session = self.sessions.get_session(session_id, self.user)
            if session.is_finalized:
                return self._replay_completed(session, index, chunks)

        session = self.sessions.store_temporary_file(
            stream, self.user, session=session, index=index, chunks=chunks
        )

        if session.chunks_received < chunks:
            return PartialUpload(session=session, chunks_left=session.chunks_left)

        if size and session.size != size:
            self.sessions.discard(session)
            raise InvalidArgument(
                f"declared size {size} does not match the {session.size} bytes received"
            )

        return self._put_session(session, id, collection, name, attributes, conflict)

    def _replay_completed(self, session: UploadSession, index: int, chunks: int) -> tuple[Node, bool]:
        if not session.is_completed:
            raise InvalidArgument(f"upload session {session.pk} is already finalized")
        if chunks != session.total_chunks or not 1 <= index <= chunks:
            raise InvalidArgument(
                f"upload session {session.pk} was completed with {session.total_chunks} chunks"
            )

        logger.debug(f"Chunk {index}/{chunks} replayed on completed session {session.pk}")
        return self.get_node(session.node_id, is_directory=False), False

    def _put_session(
        self,
        session: UploadSession,
        id,
        collection,
        name: Optional[str],
        attributes: Optional[dict[str, Any]],
        conflict: int,
    ) -> tuple[Node, bool]:
        try:
            return self._store_upload(session, id, collection, name, attributes, conflict)
        except IntegrityError:
            # Another upload took the name between the lookup and the insert
            self.sessions.discard(session)
            raise NodeConflict(f"a node called {name} was created concurrently")
        except Exception:
            self.sessions.discard(session)
            raise

    def _store_upload(
        self,
        session: UploadSession,
        id,
        collection,
        name: Optional[str],
        attributes: Optional[dict[str, Any]],
        conflict: int,
    ) -> tuple[Node, bool]:
        if id is None and name is None:
            raise InvalidArgument("neither id nor name was set")

        if conflict not in (CONFLICT_OVERWRITE, CONFLICT_RENAME):
            raise InvalidArgument(f"unknown conflict policy {conflict}")

        if id is not None:
            node = self.get_node(id, include_deleted=True, is_directory=False)
            return self.set_content(node, session, attributes, self.user), False

        parent = self.get_node(collection, is_directory=True) if collection else None
        try:
            name = validate_filename(name)
        except PathValidationError as e:
            raise InvalidArgument(str(e))

        existing = self.find_child(parent, name, include_deleted=True)
        if existing is not None and not existing.is_deleted:
            if existing.is_directory:
                raise NodeConflict(f"a collection called {name} already exists")
            if conflict == CONFLICT_RENAME:
                name = self._free_name(parent, name)
            else:
                return self.set_content(existing, session, attributes, self.user), False
        elif existing is not None and not existing.is_directory:
            # Uploading over a deleted file brings it back with new content
            return self.set_content(existing, session, attributes, self.user), False

        return self.add_file(parent, name, session, attributes, self.user), True

    def _free_name(self, parent: Optional[Node], name: str) -> str:
        counter = 1
        while True:
            candidate = numbered_name(name, counter)
            if not self.child_exists(parent, candidate):
                return candidate
            counter += 1

    # =========================================================================
    # Helpers
    # =========================================================================

    def iter_subtree(self, node: Node, include_deleted: bool = False) -> Iterable[Node]:
        """Yield ``node`` and every descendant, parents before children."""
        yield node
        for child in self.get_children(node, include_deleted):
            yield from self.iter_subtree(child, include_deleted)
