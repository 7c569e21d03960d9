"""
Management command to reconcile an SMB mount with its share.

The scan runs as a background job; with the immediate task backend it
completes before the command returns and the statistics are printed.
"""

from django.core.management.base import BaseCommand, CommandError

from core.services.smb_sync import ACTIONS, ADDED
from storage.models import Node
from storage.tasks import smb_scan


class Command(BaseCommand):
    help = "Scan an SMB mount and mirror the share into the node tree (the share wins)."

    def add_arguments(self, parser):
        parser.add_argument("mount_id", type=str, help="ID of the mount collection")
        parser.add_argument(
            "--path",
            type=str,
            default=None,
            help="Sub path relative to the mount root (default: whole mount)",
        )
        parser.add_argument(
            "--action",
            type=str,
            choices=ACTIONS,
            default=ADDED,
            help="Change notification action that triggered the scan",
        )
        parser.add_argument(
            "--no-recursive",
            action="store_true",
            help="Only reconcile the given path, do not descend into directories",
        )

    def handle(self, *args, **options):
        mount_id = options["mount_id"]
        path = options["path"]
        verbosity = options["verbosity"]

        if not Node.objects.filter(pk=mount_id, storage_adapter=Node.ADAPTER_SMB).exists():
            raise CommandError(f"No SMB mount with id {mount_id}")

        if verbosity >= 1:
            self.stdout.write(self.style.SUCCESS("=" * 60))
            self.stdout.write(self.style.SUCCESS("SMB Mount Scan"))
            self.stdout.write(self.style.SUCCESS("=" * 60))
            self.stdout.write(f"Mount: {mount_id}")
            self.stdout.write(f"Path: /{path or ''}")
            self.stdout.write(f"Action: {options['action']}")
            self.stdout.write("")

        result = smb_scan.enqueue(
            mount_id=mount_id,
            path=path,
            action=options["action"],
            recursive=not options["no_recursive"],
        )

        if result.status == "SUCCESSFUL":
            stats = result.return_value
            if stats.get("status") == "error":
                raise CommandError(stats["error"])
            if verbosity >= 1:
                self._display_stats(stats)
        elif result.status in ("READY", "RUNNING"):
            self.stdout.write(self.style.SUCCESS(f"Scan queued as task {result.id}"))
        else:
            self.stdout.write(self.style.ERROR("✗ Task failed!"))
            for error in result.errors:
                self.stdout.write(self.style.ERROR(f"\n{error.traceback}"))
            raise CommandError("SMB scan failed")

    def _display_stats(self, stats):
        self.stdout.write(f"Directories: {stats['directories_seen']}")
        self.stdout.write(f"Files: {stats['files_seen']}")
        self.stdout.write(self.style.SUCCESS(f"✓ Created: {stats['nodes_created']}"))
        self.stdout.write(self.style.SUCCESS(f"✓ Updated: {stats['nodes_updated']}"))
        self.stdout.write(self.style.SUCCESS(f"✓ Deleted: {stats['nodes_deleted']}"))

        if stats["errors"]:
            self.stdout.write("")
            self.stdout.write(self.style.ERROR(f"Errors ({len(stats['errors'])}):"))
            for error in stats["errors"][:10]:
                self.stdout.write(self.style.ERROR(f"  • {error}"))
            if len(stats["errors"]) > 10:
                self.stdout.write(
                    self.style.ERROR(f"  ... and {len(stats['errors']) - 10} more")
                )
