"""
Django management command for making a sticker from a local file.

Runs the same pipeline as the bot (scratch copy, transform, cleanup) and
writes the result to a directory instead of uploading it.
"""

import json
import shutil
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from pipeline.service.delivery import DirectoryUploader
from pipeline.service.jobs import JobKind, MediaJob, StickerMode
from pipeline.service.orchestrator import process_job
from pipeline.service.scratch import ScratchSet

ANIMATED_EXTENSIONS = ['.gif', '.mp4', '.webm', '.mov', '.mkv']


class Command(BaseCommand):
    help = 'Create a WhatsApp sticker from a local image or video (not sent anywhere)'

    def add_arguments(self, parser):
        parser.add_argument('input', type=str, help='Path to an image, GIF or short video')
        parser.add_argument(
            '--expanded',
            action='store_true',
            help='Crop to fill the canvas instead of letterboxing (like !efig)',
        )
        parser.add_argument(
            '--animated',
            action='store_true',
            help='Try an animated sticker (default: on for GIF/video inputs)',
        )
        parser.add_argument(
            '--outdir', type=str, default='.', help='Output directory (default: current directory)'
        )
        parser.add_argument('--verbose', action='store_true', help='Enable verbose output')
        parser.add_argument('--json', action='store_true', help='Output result as JSON')

    def handle(self, *args, **options):
        input_path = Path(options['input'])
        if not input_path.is_file():
            raise CommandError(f'File not found: {input_path}')

        verbose = options['verbose']
        animated = options['animated'] or input_path.suffix.lower() in ANIMATED_EXTENSIONS
        mode = StickerMode.EXPANDED if options['expanded'] else StickerMode.STANDARD

        def logger(message):
            if verbose:
                self.stdout.write(message)

        # The job owns (and deletes) its source blob, so work on a scratch copy
        staging = ScratchSet(logger=logger)
        blob = staging.new_path('inbound', input_path.suffix.lower())
        shutil.copy2(input_path, blob)

        job = MediaJob(kind=JobKind.STICKER, source_ref=blob, mode=mode, animated=animated)
        uploader = DirectoryUploader(options['outdir'], basename=f'{input_path.stem}-sticker')
        outcome = process_job(job, uploader, notify=logger, logger=logger)
        staging.release_all()

        if not outcome.succeeded:
            raise CommandError(f'{outcome.failure_notice} ({outcome.error})')

        result = outcome.result
        if options['json']:
            self.stdout.write(
                json.dumps(
                    {
                        'success': True,
                        'output_path': result.remote_handle,
                        'media_type': result.media_type.value,
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
