"""Tests for NodeService tree operations."""

import hashlib
import unicodedata
from io import BytesIO
from unittest import mock

from django.db import IntegrityError, transaction
from django.dispatch import receiver
from django.utils import timezone

from core.exceptions import (
    InvalidArgument,
    NodeConflict,
    NodeNotFound,
    NodeReadonly,
    VersionNotFound,
)
from core.tests.base import CirrusTestCase
from core.tests.factories import UserFactory
from storage.models import FileVersion, Node, UploadSession
from storage.services import (
    CONFLICT_OVERWRITE,
    CONFLICT_RENAME,
    NodeService,
    PartialUpload,
)
from storage.signals import node_changed
from storage.tests.factories import NodeFactory


class NodeServiceTestCase(CirrusTestCase):
    """Shared helpers for NodeService tests."""

    def setUp(self):
        super().setUp()
        self.service = NodeService(self.user)

    def _session(self, data: bytes = b"content"):
        return self.service.sessions.store_temporary_file(BytesIO(data), self.user)

    def _file(self, name="a.txt", data=b"content", parent=None):
        return self.service.add_file(parent, name, session=self._session(data), user=self.user)

    def _read(self, node) -> bytes:
        with self.service.open_content(node) as f:
            return f.read()


class LookupTest(NodeServiceTestCase):
    """Tests for node lookups."""

    def test_get_node_of_other_owner_raises(self):
        node = NodeFactory(owner=UserFactory())
        with self.assertRaises(NodeNotFound):
            self.service.get_node(node.pk)

    def test_get_node_malformed_id_raises(self):
        with self.assertRaises(NodeNotFound):
            self.service.get_node("not-a-uuid")

    def test_get_node_type_filter(self):
        folder = self.service.add_directory(None, "docs")
        with self.assertRaises(NodeNotFound):
            self.service.get_node(folder.pk, is_directory=False)
        self.assertEqual(self.service.get_node(folder.pk, is_directory=True), folder)

    def test_get_child_matches_decomposed_name(self):
        """Lookups by name use the NFC form."""
        node = self.service.add_directory(None, "café")
        self.assertEqual(self.service.get_child(None, unicodedata.normalize("NFD", "café")), node)

    def test_get_child_missing_raises(self):
        with self.assertRaises(NodeNotFound):
            self.service.get_child(None, "nothing")

    def test_iter_subtree_yields_parents_first(self):
        docs = self.service.add_directory(None, "docs")
        sub = self.service.add_directory(docs, "sub")
        leaf = self.service.add_file(sub, "leaf.txt")

        self.assertEqual(list(self.service.iter_subtree(docs)), [docs, sub, leaf])


class AddNodeTest(NodeServiceTestCase):
    """Tests for add_directory and add_file."""

    def test_add_directory(self):
        node = self.service.add_directory(None, "docs", user=self.user)

        self.assertTrue(node.is_directory)
        self.assertEqual(node.owner, self.user)
        self.assertIsNone(node.parent)
        self.assertEqual(node.get_path(), "/docs")

    def test_duplicate_name_raises(self):
        self.service.add_directory(None, "docs")
        with self.assertRaises(NodeConflict):
            self.service.add_file(None, "docs")

    def test_name_of_deleted_node_can_be_reused(self):
        old = self.service.add_directory(None, "docs")
        self.service.delete(old)
        new = self.service.add_directory(None, "docs")
        self.assertNotEqual(new.pk, old.pk)

    def test_invalid_name_raises(self):
        for name in ("", "..", "a/b"):
            with self.assertRaises(InvalidArgument, msg=repr(name)):
                self.service.add_directory(None, name)

    def test_parent_must_be_live_writable_collection(self):
        file_node = self._file()
        with self.assertRaises(InvalidArgument):
            self.service.add_directory(file_node, "x")

        readonly = self.service.add_directory(None, "ro", attributes={"readonly": True})
        with self.assertRaises(NodeReadonly):
            self.service.add_directory(readonly, "x")

        deleted = self.service.add_directory(None, "gone")
        self.service.delete(deleted)
        with self.assertRaises(NodeNotFound):
            self.service.add_directory(deleted, "x")

    def test_add_file_with_content(self):
        """The first version is stored under owner/node/version."""
        node = self._file("report.pdf", b"hello")

        self.assertEqual(node.version, 1)
        self.assertEqual(node.size, 5)
        self.assertEqual(node.hash, hashlib.md5(b"hello").hexdigest())
        self.assertEqual(node.content_type, "application/pdf")
        self.assertEqual(node.storage_path, f"{self.user.pk}/{node.pk}/1")
        self.assertEqual(
            (self.test_storage_root / node.storage_path).read_bytes(), b"hello"
        )

        entry = node.history.get()
        self.assertEqual(entry.type, FileVersion.TYPE_ADD)
        self.assertEqual(entry.user, self.user)

    def test_add_file_discards_session(self):
        self._file()
        self.assertFalse(UploadSession.objects.exists())

    def test_add_empty_file(self):
        """A file without content has version 0 and reads as empty."""
        node = self.service.add_file(None, "empty.txt")

        self.assertEqual(node.version, 0)
        self.assertEqual(self._read(node), b"")
        self.assertFalse(node.history.exists())

    def test_created_attribute_overrides_creation_time(self):
        folder = self.service.add_directory(None, "docs")
        node = self.service.add_directory(
            None, "old", attributes={"created": folder.created_at.replace(year=2001)}
        )
        node.refresh_from_db()
        self.assertEqual(node.created_at.year, 2001)

    def test_node_changed_is_sent(self):
        """Every mutation announces itself with its action."""
        events = []

        @receiver(node_changed, weak=False)
        def record(sender, node, user, action, **kwargs):
            events.append((node.name, action, user))

        try:
            node = self._file()
            node = self.service.set_content(node, self._session(b"v2"), user=self.user)
            self.service.restore(node, 1, user=self.user)
            self.service.delete(node, user=self.user)
        finally:
            node_changed.disconnect(record)

        self.assertEqual(
            [action for _, action, _ in events], ["add", "update", "restore", "delete"]
        )
        self.assertTrue(all(user == self.user for _, _, user in events))


class ContentTest(NodeServiceTestCase):
    """Tests for set_content, restore and open_content."""

    def test_set_content_creates_new_version(self):
        node = self._file(data=b"one")
        node = self.service.set_content(node, self._session(b"two"), user=self.user)

        self.assertEqual(node.version, 2)
        self.assertEqual(self._read(node), b"two")
        self.assertEqual(
            list(node.history.values_list("version", "type")),
            [(1, FileVersion.TYPE_ADD), (2, FileVersion.TYPE_UPDATE)],
        )
        # The previous version's bytes are kept for restore
        self.assertTrue((self.test_storage_root / f"{self.user.pk}/{node.pk}/1").exists())

    def test_identical_content_only_updates_attributes(self):
        node = self._file(data=b"same")
        node = self.service.set_content(
            node, self._session(b"same"), attributes={"content_type": "text/x-custom"}
        )

        self.assertEqual(node.version, 1)
        self.assertEqual(node.history.count(), 1)
        self.assertEqual(node.content_type, "text/x-custom")

    def test_set_content_on_collection_raises(self):
        folder = self.service.add_directory(None, "docs")
        with self.assertRaises(InvalidArgument):
            self.service.set_content(folder, self._session())

    def test_set_content_on_readonly_raises(self):
        node = self._file()
        Node.objects.filter(pk=node.pk).update(readonly=True)
        node.refresh_from_db()

        with self.assertRaises(NodeReadonly):
            self.service.set_content(node, self._session(b"new"))

    def test_set_content_undeletes_file(self):
        node = self._file(data=b"one")
        self.service.delete(node)
        node.refresh_from_db()

        node = self.service.set_content(node, self._session(b"two"))

        self.assertIsNone(node.deleted)
        self.assertEqual(node.version, 2)

    def test_undelete_conflicts_with_new_sibling(self):
        node = self._file()
        self.service.delete(node)
        node.refresh_from_db()
        self._file()

        with self.assertRaises(NodeConflict):
            self.service.set_content(node, self._session(b"x"))

    def test_restore_adds_version_with_old_content(self):
        node = self._file(data=b"one")
        node = self.service.set_content(node, self._session(b"two"))

        node = self.service.restore(node, 1, user=self.user)

        self.assertEqual(node.version, 3)
        self.assertEqual(node.hash, hashlib.md5(b"one").hexdigest())
        self.assertEqual(self._read(node), b"one")
        self.assertEqual(node.history.last().type, FileVersion.TYPE_RESTORE)

    def test_restore_current_or_unknown_version_raises(self):
        node = self._file()
        with self.assertRaises(InvalidArgument):
            self.service.restore(node, 1)
        with self.assertRaises(VersionNotFound):
            self.service.restore(node, 7)

    def test_restore_mirrored_file_raises(self):
        mount = NodeFactory(mount=True, owner=self.user)
        node = NodeFactory(owner=self.user, parent=mount, storage_reference=mount, version=1)
        with self.assertRaises(InvalidArgument):
            self.service.restore(node, 1)

    def test_open_missing_blob_raises(self):
        node = self._file()
        (self.test_storage_root / node.storage_path).unlink()
        with self.assertRaises(NodeNotFound):
            self.service.open_content(node)

    def test_history_of_collection_raises(self):
        folder = self.service.add_directory(None, "docs")
        with self.assertRaises(InvalidArgument):
            self.service.get_history(folder)


class DeleteTest(NodeServiceTestCase):
    """Tests for soft and permanent deletion."""

    def _tree(self):
        docs = self.service.add_directory(None, "docs")
        sub = self.service.add_directory(docs, "sub")
        leaf = self._file("leaf.txt", parent=sub)
        return docs, sub, leaf

    def test_soft_delete_marks_subtree(self):
        docs, sub, leaf = self._tree()

        self.service.delete(docs)

        for node in (docs, sub, leaf):
            node.refresh_from_db()
            self.assertIsNotNone(node.deleted)
        with self.assertRaises(NodeNotFound):
            self.service.get_node(leaf.pk)
        self.assertEqual(self.service.get_node(leaf.pk, include_deleted=True), leaf)

    def test_undelete_clears_only_the_node(self):
        docs, sub, leaf = self._tree()
        self.service.delete(docs)

        self.service.undelete(docs)

        docs.refresh_from_db()
        sub.refresh_from_db()
        self.assertIsNone(docs.deleted)
        self.assertIsNotNone(sub.deleted)

    def test_undelete_taken_name_conflicts(self):
        node = self._file()
        self.service.delete(node)
        self._file()

        with self.assertRaises(NodeConflict):
            self.service.undelete(node)

    def test_soft_delete_is_idempotent(self):
        node = self._file()
        self.service.delete(node)
        node.refresh_from_db()
        stamp = node.deleted

        self.service.delete(node)
        node.refresh_from_db()
        self.assertEqual(node.deleted, stamp)

    def test_readonly_node_can_not_be_deleted(self):
        node = self.service.add_directory(None, "ro", attributes={"readonly": True})
        with self.assertRaises(NodeReadonly):
            self.service.delete(node)
        with self.assertRaises(NodeReadonly):
            self.service.delete(node, force=True)

    def test_force_delete_removes_rows_and_bytes(self):
        docs, sub, leaf = self._tree()
        leaf = self.service.set_content(leaf, self._session(b"v2"))
        blob_dir = self.test_storage_root / f"{self.user.pk}/{leaf.pk}"
        self.assertTrue(blob_dir.exists())

        self.service.delete(docs, force=True)

        self.assertFalse(Node.objects.filter(pk__in=[docs.pk, sub.pk, leaf.pk]).exists())
        self.assertFalse(FileVersion.objects.filter(node_id=leaf.pk).exists())
        self.assertFalse(blob_dir.exists())

    def test_force_delete_of_soft_deleted_node(self):
        node = self._file()
        self.service.delete(node)
        node.refresh_from_db()

        self.service.delete(node, force=True)
        self.assertFalse(Node.objects.filter(pk=node.pk).exists())

    @mock.patch("storage.services.SmbStorageBackend")
    def test_deleting_mount_leaves_share_alone(self, smb_backend):
        """Removing a mount removes only the local mirror."""
        mount = NodeFactory(mount=True, owner=self.user)
        folder = NodeFactory(
            directory=True, owner=self.user, parent=mount,
            storage_reference=mount, storage_path="docs",
        )
        NodeFactory(
            owner=self.user, parent=folder, storage_reference=mount,
            storage_path="docs/a.txt", version=1,
        )

        self.service.delete(mount, force=True)

        self.assertFalse(Node.objects.filter(owner=self.user).exists())
        smb_backend.from_options.assert_not_called()


class UploadTest(NodeServiceTestCase):
    """Tests for put and put_chunk."""

    def test_put_creates_file(self):
        node, created = self.service.put(BytesIO(b"hello"), name="a.txt")

        self.assertTrue(created)
        self.assertEqual(node.size, 5)
        self.assertFalse(UploadSession.objects.exists())

    def test_put_into_collection(self):
        docs = self.service.add_directory(None, "docs")
        node, _ = self.service.put(BytesIO(b"x"), collection=docs.pk, name="a.txt")
        self.assertEqual(node.parent, docs)

    def test_put_same_name_overwrites(self):
        first, _ = self.service.put(BytesIO(b"one"), name="a.txt")
        second, created = self.service.put(
            BytesIO(b"two"), name="a.txt", conflict=CONFLICT_OVERWRITE
        )

        self.assertFalse(created)
        self.assertEqual(second.pk, first.pk)
        self.assertEqual(second.version, 2)

    def test_put_same_name_renames(self):
        self.service.put(BytesIO(b"one"), name="a.txt")
        self.service.put(BytesIO(b"two"), name="a.txt", conflict=CONFLICT_RENAME)
        node, created = self.service.put(BytesIO(b"three"), name="a.txt", conflict=CONFLICT_RENAME)

        self.assertTrue(created)
        self.assertEqual(node.name, "a (2).txt")

    def test_put_by_id_updates(self):
        node, _ = self.service.put(BytesIO(b"one"), name="a.txt")
        updated, created = self.service.put(BytesIO(b"two"), id=node.pk)

        self.assertFalse(created)
        self.assertEqual(updated.version, 2)

    def test_put_over_deleted_file_revives_it(self):
        node, _ = self.service.put(BytesIO(b"one"), name="a.txt")
        self.service.delete(node)

        revived, created = self.service.put(BytesIO(b"two"), name="a.txt")

        self.assertFalse(created)
        self.assertEqual(revived.pk, node.pk)
        self.assertIsNone(revived.deleted)

    def test_put_onto_collection_name_conflicts(self):
        self.service.add_directory(None, "docs")
        with self.assertRaises(NodeConflict):
            self.service.put(BytesIO(b"x"), name="docs")
        self.assertFalse(UploadSession.objects.exists())

    def test_put_requires_id_or_name(self):
        with self.assertRaises(InvalidArgument):
            self.service.put(BytesIO(b"x"))
        self.assertFalse(UploadSession.objects.exists())

    def test_put_unknown_conflict_policy(self):
        with self.assertRaises(InvalidArgument):
            self.service.put(BytesIO(b"x"), name="a.txt", conflict=5)

    def test_put_chunk_completes_on_last_chunk(self):
        partial = self.service.put_chunk(BytesIO(b"hello "), name="a.txt", index=1, chunks=2)

        self.assertIsInstance(partial, PartialUpload)
        self.assertEqual(partial.chunks_left, 1)
        self.assertFalse(Node.objects.filter(name="a.txt").exists())

        node, created = self.service.put_chunk(
            BytesIO(b"world"), session_id=partial.session.pk, name="a.txt",
            index=2, chunks=2, size=11,
        )

        self.assertTrue(created)
        self.assertEqual(self._read(node), b"hello world")

    def test_put_chunk_size_mismatch_discards_session(self):
        partial = self.service.put_chunk(BytesIO(b"abc"), name="a.txt", index=1, chunks=2)

        with self.assertRaises(InvalidArgument):
            self.service.put_chunk(
                BytesIO(b"def"), session_id=partial.session.pk, name="a.txt",
                index=2, chunks=2, size=100,
            )
        self.assertFalse(UploadSession.objects.exists())

    def test_put_chunk_replayed_last_chunk_returns_file(self):
        """Retrying the last chunk after a lost response finds the stored file."""
        partial = self.service.put_chunk(BytesIO(b"hello "), name="a.txt", index=1, chunks=2)
        node, _ = self.service.put_chunk(
            BytesIO(b"world"), session_id=partial.session.pk, name="a.txt", index=2, chunks=2,
        )

        replayed, created = self.service.put_chunk(
            BytesIO(b"world"), session_id=partial.session.pk, name="a.txt", index=2, chunks=2,
        )

        self.assertFalse(created)
        self.assertEqual(replayed.pk, node.pk)
        self.assertEqual(replayed.version, 1)
        self.assertEqual(self._read(replayed), b"hello world")
        self.assertEqual(Node.objects.filter(name="a.txt").count(), 1)

    def test_put_chunk_replay_with_other_chunk_count_raises(self):
        partial = self.service.put_chunk(BytesIO(b"a"), name="a.txt", index=1, chunks=2)
        self.service.put_chunk(BytesIO(b"b"), session_id=partial.session.pk, name="a.txt", index=2, chunks=2)

        with self.assertRaises(InvalidArgument):
            self.service.put_chunk(
                BytesIO(b"b"), session_id=partial.session.pk, name="a.txt", index=3, chunks=3,
            )

    def test_put_name_taken_concurrently_raises_conflict(self):
        """A duplicate insert after the name lookup becomes a conflict."""
        docs = self.service.add_directory(None, "docs")
        NodeFactory(owner=self.user, parent=docs, name="a.txt")

        with mock.patch.object(NodeService, "find_child", return_value=None), \
                mock.patch.object(NodeService, "child_exists", return_value=False):
            with self.assertRaises(NodeConflict):
                self.service.put(BytesIO(b"x"), collection=docs.pk, name="a.txt")

        self.assertFalse(UploadSession.objects.exists())
        self.assertEqual(Node.objects.filter(name="a.txt").count(), 1)

    def test_put_storage_error_discards_session(self):
        backend = self.service.get_backend(None)
        with mock.patch.object(backend, "save", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                self.service.put(BytesIO(b"x"), name="a.txt")

        self.assertFalse(UploadSession.objects.exists())
        self.assertFalse(Node.objects.filter(name="a.txt").exists())


class ConstraintTest(NodeServiceTestCase):
    """Tests for database level name uniqueness."""

    def test_top_level_names_are_unique(self):
        NodeFactory(owner=self.user, name="a.txt")
        with self.assertRaises(IntegrityError), transaction.atomic():
            NodeFactory(owner=self.user, name="a.txt")

    def test_top_level_name_reusable_after_delete(self):
        NodeFactory(owner=self.user, name="a.txt", deleted=timezone.now())
        NodeFactory(owner=self.user, name="a.txt")
        self.assertEqual(Node.objects.filter(name="a.txt").count(), 2)

    def test_top_level_names_are_per_owner(self):
        NodeFactory(owner=self.user, name="a.txt")
        NodeFactory(owner=UserFactory(), name="a.txt")
        self.assertEqual(Node.objects.filter(name="a.txt").count(), 2)


class MountTest(NodeServiceTestCase):
    """Tests for SMB mount collections."""

    OPTIONS = {"host": "fileserver", "share": "data", "username": "svc", "password": "secret"}

    def test_create_mount_schedules_scan_after_commit(self):
        with mock.patch("storage.tasks.smb_scan") as smb_scan:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                mount = self.service.create_mount(None, "share", self.OPTIONS)

        self.assertEqual(len(callbacks), 1)
        smb_scan.enqueue.assert_called_once_with(mount_id=str(mount.pk))
        self.assertTrue(mount.is_mount)
        self.assertEqual(mount.mount_options["system_folder"], ".cirrus")

    def test_create_mount_without_scan(self):
        with self.captureOnCommitCallbacks() as callbacks:
            self.service.create_mount(None, "share", self.OPTIONS, scan=False)
        self.assertEqual(callbacks, [])

    def test_create_mount_requires_host_and_share(self):
        with self.assertRaises(InvalidArgument):
            self.service.create_mount(None, "share", {"host": "fileserver"}, scan=False)

    def test_mounts_can_not_nest(self):
        mount = self.service.create_mount(None, "share", self.OPTIONS, scan=False)
        with self.assertRaises(InvalidArgument):
            self.service.create_mount(mount, "inner", self.OPTIONS, scan=False)

    @mock.patch("storage.services.SmbStorageBackend")
    def test_collection_in_mount_is_created_on_share(self, smb_backend):
        mount = self.service.create_mount(None, "share", self.OPTIONS, scan=False)
        docs = self.service.add_directory(mount, "docs")
        sub = self.service.add_directory(docs, "sub")

        self.assertEqual(docs.storage_reference, mount)
        self.assertEqual(sub.storage_path, "docs/sub")
        share = smb_backend.from_options.return_value
        self.assertEqual(
            [c.args[0] for c in share.mkdir.call_args_list], ["docs", "docs/sub"]
        )

    @mock.patch("storage.services.SmbStorageBackend")
    def test_upload_into_mount_writes_to_share(self, smb_backend):
        mount = self.service.create_mount(None, "share", self.OPTIONS, scan=False)

        node, _ = self.service.put(BytesIO(b"hello"), collection=mount.pk, name="a.txt")

        share = smb_backend.from_options.return_value
        self.assertEqual(share.save.call_args.args[0], "a.txt")
        self.assertEqual(node.storage_path, "a.txt")
        self.assertEqual(node.storage_reference, mount)
