"""
Management command to clean up abandoned scratch files.

Jobs delete their own scratch files, but a worker killed mid-transcode
leaves its files behind. This removes anything older than the max age.
"""

from django.conf import settings
from django.core.management.base import BaseCommand

from pipeline.service.config import get_scratch_dir
from pipeline.service.scratch import find_stale_files, release_file


class Command(BaseCommand):
    help = 'Delete scratch files left behind by crashed or killed workers'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting',
        )
        parser.add_argument(
            '--max-age',
            type=int,
            default=None,
            help='Minutes before a scratch file counts as abandoned '
            '(default: BACHAT_SCRATCH_MAX_AGE_MINUTES)',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        max_age_minutes = options['max_age']
        if max_age_minutes is None:
            max_age_minutes = settings.BACHAT_SCRATCH_MAX_AGE_MINUTES

        scratch_dir = get_scratch_dir()
        stale = find_stale_files(max_age_minutes, directory=scratch_dir)

        if not stale:
            self.stdout.write(
                self.style.SUCCESS(
                    f'No scratch files older than {max_age_minutes} minutes in {scratch_dir}'
                )
            )
            return

        total_size = sum(path.stat().st_size for path, _ in stale)
        self.stdout.write(f'\nFound {len(stale)} abandoned scratch file{"s" if len(stale) != 1 else ""}:')
        for path, age in stale:
            self.stdout.write(f'  {path.name:60} | Age: {int(age // 60):5} min')
        self.stdout.write(f'Total size: {total_size / (1024 * 1024):.1f} MB\n')

        if dry_run:
            self.stdout.write(
                self.style.WARNING(f'DRY RUN: Would delete {len(stale)} file(s)')
            )
            self.stdout.write('Run without --dry-run to actually delete')
            return

        deleted = 0
        for path, _ in stale:
            if release_file(path, logger=self.stdout.write):
                deleted += 1
            else:
                self.stdout.write(self.style.ERROR(f'✗ Could not delete {path.name}'))

        self.stdout.write(self.style.SUCCESS(f'✓ Deleted {deleted} of {len(stale)} scratch file(s)'))
