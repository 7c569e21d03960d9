"""Management command to cleanup expired upload sessions."""

from django.core.management.base import BaseCommand
from django.utils import timezone

from core.services.upload import UploadSessionService
from storage.models import UploadSession


class Command(BaseCommand):
    help = 'Delete expired upload sessions and their temporary files'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting'
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']

        if dry_run:
            expired = UploadSession.objects.filter(
                expires_at__lt=timezone.now()
            ).select_related('owner')
            count = expired.count()
            self.stdout.write(
                self.style.WARNING(f'DRY RUN: Would delete {count} expired upload sessions')
            )
            if count > 0:
                self.stdout.write('\nExpired sessions:')
                for session in expired[:10]:  # Show first 10
                    self.stdout.write(
                        f'  - {session.owner.username}: {session.size} bytes, '
                        f'expired at {session.expires_at}'
                    )
                if count > 10:
                    self.stdout.write(f'  ... and {count - 10} more')
            return

        count = UploadSessionService().cleanup_expired()
        self.stdout.write(
            self.style.SUCCESS(f'Successfully deleted {count} expired upload sessions')
        )
