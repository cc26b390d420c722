"""
Django management command for fetching a video.

Runs the video pipeline (download, trim if oversized, document fallback)
and writes the result to a directory instead of uploading it.
"""

import json

from django.core.management.base import BaseCommand, CommandError

from pipeline.service.delivery import DirectoryUploader
from pipeline.service.jobs import JobKind, MediaJob, QualityTier
from pipeline.service.orchestrator import process_job


class Command(BaseCommand):
    help = 'Download a video the way the bot would (not sent anywhere)'

    def add_arguments(self, parser):
        parser.add_argument('url', type=str, help='Video URL')
        parser.add_argument(
            '--quality',
            type=str,
            default='default',
            help='default (~720p), max, or a height: 360/480/720/1080/1440/2160',
        )
        parser.add_argument(
            '--outdir', type=str, default='.', help='Output directory (default: current directory)'
        )
        parser.add_argument('--verbose', action='store_true', help='Enable verbose output')
        parser.add_argument('--json', action='store_true', help='Output result as JSON')

    def handle(self, *args, **options):
        verbose = options['verbose']
        output_json = options['json']
        quality = QualityTier.parse(options['quality'])

        def logger(message):
            if verbose:
                self.stdout.write(message)

        def notify(text):
            if not output_json:
                self.stdout.write(text)

        job = MediaJob(kind=JobKind.VIDEO_DOWNLOAD, source_ref=options['url'], quality=quality)
        uploader = DirectoryUploader(options['outdir'])
        outcome = process_job(job, uploader, notify=notify, logger=logger)

        if not outcome.succeeded:
            if output_json:
                self.stdout.write(json.dumps({'success': False, 'error': str(outcome.error)}))
                return
            raise CommandError(f'{outcome.failure_notice} ({outcome.error})')

        result = outcome.result
        if output_json:
            self.stdout.write(
                json.dumps(
                    {
                        'success': True,
                        'output_path': result.remote_handle,
                        'media_type': result.media_type.value,
                        'quality': quality.describe(),
                        'note': result.note,
                    },
                    indent=2,
                )
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(f'✓ {result.media_type.value}: {result.remote_handle}')
            )
            if result.note:
                self.stdout.write(result.note)
