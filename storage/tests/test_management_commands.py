"""Tests for storage management commands."""

import uuid
from datetime import timedelta
from io import BytesIO, StringIO
from unittest import mock

from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from core.services.smb_sync import SmbScanStats
from core.services.upload import UploadSessionService
from core.tests.base import CirrusTestCase
from storage.models import UploadSession
from storage.tests.factories import NodeFactory


class SmbScanCommandTest(CirrusTestCase):
    """Tests for the smb_scan command."""

    def setUp(self):
        super().setUp()
        self.mount = NodeFactory(mount=True, owner=self.user)

    def test_unknown_mount(self):
        with self.assertRaises(CommandError):
            call_command("smb_scan", str(uuid.uuid4()), stdout=StringIO())

    @mock.patch("storage.tasks.SmbScanner")
    def test_prints_statistics(self, scanner_class):
        scanner_class.return_value.scan.return_value = SmbScanStats(
            directories_seen=1, files_seen=2, nodes_created=2, errors=["Error syncing x: boom"]
        )
        out = StringIO()

        call_command("smb_scan", str(self.mount.pk), "--path", "docs", stdout=out)

        output = out.getvalue()
        self.assertIn("Created: 2", output)
        self.assertIn("Error syncing x: boom", output)
        scanner_class.return_value.scan.assert_called_once_with(
            path="docs", action="added", recursive=True
        )

    @mock.patch("storage.tasks.SmbScanner")
    def test_no_recursive_and_action(self, scanner_class):
        scanner_class.return_value.scan.return_value = SmbScanStats()

        call_command(
            "smb_scan", str(self.mount.pk), "--action", "removed", "--no-recursive",
            stdout=StringIO(),
        )

        scanner_class.return_value.scan.assert_called_once_with(
            path=None, action="removed", recursive=False
        )

    @mock.patch("storage.tasks.SmbScanner")
    def test_failed_scan_raises(self, scanner_class):
        scanner_class.return_value.scan.side_effect = ConnectionError("share unreachable")

        with self.assertRaises(CommandError):
            call_command("smb_scan", str(self.mount.pk), stdout=StringIO())


class CleanupUploadSessionsCommandTest(CirrusTestCase):
    """Tests for the cleanup_upload_sessions command."""

    def setUp(self):
        super().setUp()
        sessions = UploadSessionService()
        self.expired = sessions.store_temporary_file(BytesIO(b"old"), self.user)
        self.live = sessions.store_temporary_file(BytesIO(b"new"), self.user)
        UploadSession.objects.filter(pk=self.expired.pk).update(
            expires_at=timezone.now() - timedelta(hours=1)
        )

    def test_dry_run_lists_without_deleting(self):
        out = StringIO()
        call_command("cleanup_upload_sessions", "--dry-run", stdout=out)

        self.assertIn("Would delete 1", out.getvalue())
        self.assertIn(self.user.username, out.getvalue())
        self.assertEqual(UploadSession.objects.count(), 2)

    def test_deletes_expired_sessions(self):
        out = StringIO()
        call_command("cleanup_upload_sessions", stdout=out)

        self.assertIn("Successfully deleted 1", out.getvalue())
        self.assertEqual(list(UploadSession.objects.all()), [self.live])
