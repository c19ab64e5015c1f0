"""Management command to sweep records whose upload never arrived."""

import logging
from datetime import timedelta
from typing import Any, Final

from django.core.management.base import BaseCommand
from django.utils import timezone

from server.apps.files.logic.record_operations import (
    delete_record,
    incomplete_records_before,
)

_DEFAULT_AGE_HOURS: Final = 24
_DEFAULT_BATCH_SIZE: Final = 1000

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Delete incomplete file records older than a cutoff.

    Upload tickets live in memory, so a record whose ticket was lost
    on restart can never be completed. This sweep removes them.
    """

    help = 'Delete file records that never received an upload'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--older-than-hours',
            type=int,
            default=_DEFAULT_AGE_HOURS,
            help=(
                'Only records created this many hours ago '
                f'(default: {_DEFAULT_AGE_HOURS})'
            ),
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without deleting',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=_DEFAULT_BATCH_SIZE,
            help=f'Max records to process (default: {_DEFAULT_BATCH_SIZE})',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the cleanup command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        age_hours = options['older_than_hours']

        cutoff = timezone.now() - timedelta(hours=age_hours)
        self.stdout.write(
            f'Looking for incomplete records created before {cutoff}',
        )

        stale_records = incomplete_records_before(cutoff)[
            :options['batch_size']
        ]

        count = 0
        failed = 0

        for record in stale_records:
            if dry_run:
                self.stdout.write(
                    f'Would delete: {record.filename} '
                    f'(owner: {record.owner}, created: {record.created_at})',
                )
                count += 1
                continue

            try:
                delete_record(record.id)
            except Exception as exc:
                self.stderr.write(f'Failed to delete {record.id}: {exc}')
                logger.exception(
                    'Failed to delete incomplete record: %s',
                    record.id,
                )
                failed += 1
            else:
                count += 1

        if dry_run:
            self.stdout.write(
                self.style.SUCCESS(f'Would delete {count} incomplete records'),
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f'Deleted {count} incomplete records, {failed} failed',
                ),
            )
