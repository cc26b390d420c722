"""
Tests for service/download.py
"""

import shutil
import tempfile
import time
from pathlib import Path
from unittest.mock import patch

import yt_dlp
from django.test import SimpleTestCase, override_settings

from pipeline.service.download import (
    TRIMMED_NOTE,
    VIDEO_READY_NOTE,
    _deadline_hook,
    acquire_video,
    build_format_selector,
    build_trim_args,
    build_ytdlp_opts,
    download_video,
    oversized_note,
    progress_note,
)
from pipeline.service.errors import DownloadFailed, InvocationTimeout
from pipeline.service.jobs import MediaType, QualityTier
from pipeline.service.scratch import ScratchSet
from pipeline.test_service.fakes import FakeInvoker, fake_ytdlp

MIB = 1024 * 1024
URL = 'https://example.com/watch?v=abc'


class FormatSelectorTest(SimpleTestCase):
    """Tests for build_format_selector"""

    def test_default_prefers_h264_mp4_at_720(self):
        """Test the default tier selector"""
        selector = build_format_selector(QualityTier.default())
        self.assertEqual(
            selector,
            'bestvideo[height<=720][ext=mp4][vcodec^=avc1]+bestaudio[ext=m4a]'
            '/best[height<=720][ext=mp4]/best[height<=720]',
        )

    def test_max_has_no_height_bound(self):
        """Test the max tier selector"""
        selector = build_format_selector(QualityTier.maximum())
        self.assertEqual(selector, 'bestvideo[vcodec^=avc1]+bestaudio[ext=m4a]/best')

    def test_fixed_height(self):
        """Test a bounded tier selector"""
        selector = build_format_selector(QualityTier.fixed_height(1080))
        self.assertEqual(
            selector, 'bestvideo[height<=1080][vcodec^=avc1]+bestaudio[ext=m4a]/best[height<=1080]'
        )

    def test_unsupported_height_matches_default(self):
        """Test that 9999 selects exactly like the default tier"""
        self.assertEqual(
            build_format_selector(QualityTier.fixed_height(9999)),
            build_format_selector(QualityTier.default()),
        )


class NotesTest(SimpleTestCase):
    """Tests for user-facing notes"""

    def test_progress_note_names_quality(self):
        """Test the progress note label"""
        self.assertEqual(progress_note(QualityTier.fixed_height(480)), 'Baixando vídeo (480p)... ⏳')

    def test_oversized_note_reports_megabytes(self):
        """Test that the document note shows the size with one decimal"""
        self.assertEqual(
            oversized_note(25 * MIB), 'Ainda grande (25.0 MB), enviado como documento! 📄'
        )


class YtdlpOptsTest(SimpleTestCase):
    """Tests for build_ytdlp_opts"""

    def test_basic_options(self):
        """Test that the options merge to MP4 and skip playlists"""
        opts = build_ytdlp_opts(URL, QualityTier.default(), '/tmp/x.%(ext)s', timeout=600)

        self.assertEqual(opts['merge_output_format'], 'mp4')
        self.assertTrue(opts['noplaylist'])
        self.assertEqual(opts['outtmpl'], '/tmp/x.%(ext)s')
        self.assertEqual(opts['socket_timeout'], 60)
        self.assertNotIn('enable_file_urls', opts)

    def test_single_file_fallback_is_remuxed_to_mp4(self):
        """Test that a webm picked by the /best fallback still ends up as mp4"""
        opts = build_ytdlp_opts(URL, QualityTier.maximum(), '/tmp/x.%(ext)s')

        self.assertIn({'key': 'FFmpegVideoRemuxer', 'preferedformat': 'mp4'}, opts['postprocessors'])

    def test_file_urls_enabled(self):
        """Test that file:// URLs are allowed explicitly"""
        opts = build_ytdlp_opts('file:///tmp/video.mp4', QualityTier.default(), '/tmp/x.%(ext)s')
        self.assertTrue(opts['enable_file_urls'])

    @override_settings(
        BACHAT_YTDLP_PROXY='http://proxy:3128', BACHAT_YTDLP_EXTRA_ARGS='--retries 5'
    )
    def test_proxy_and_extra_args_from_settings(self):
        """Test that configured proxy and extra args are applied"""
        opts = build_ytdlp_opts(URL, QualityTier.default(), '/tmp/x.%(ext)s')
        self.assertEqual(opts['proxy'], 'http://proxy:3128')
        self.assertEqual(opts['retries'], 5)

    def test_trim_args(self):
        """Test that trimming re-encodes the first 30 seconds to H.264/AAC"""
        args = build_trim_args('in.mp4', 'out.mp4')
        self.assertEqual(args[args.index('-t') + 1], '30')
        self.assertEqual(args[args.index('-c:v') + 1], 'libx264')
        self.assertEqual(args[args.index('-c:a') + 1], 'aac')
        self.assertEqual(args[-1], 'out.mp4')


class DownloadTestCase(SimpleTestCase):
    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.scratch = ScratchSet(self.temp_dir)

    def tearDown(self):
        self.scratch.release_all()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def listing(self):
        return sorted(p.name for p in self.temp_dir.iterdir())


class DownloadVideoTest(DownloadTestCase):
    """Tests for download_video"""

    def test_download_returns_merged_file(self):
        """Test that the merged MP4 is returned and owned by the scratch set"""
        factory = fake_ytdlp(2 * MIB)
        with patch('pipeline.service.download.yt_dlp.YoutubeDL', side_effect=factory):
            path = download_video(URL, QualityTier.default(), self.scratch)

        self.assertEqual(path.suffix, '.mp4')
        self.assertEqual(path.stat().st_size, 2 * MIB)
        self.assertIn(path, self.scratch.owned)
        self.assertEqual(
            factory.seen_opts[0]['format'], build_format_selector(QualityTier.default())
        )

    def test_download_error_becomes_download_failed(self):
        """Test that yt-dlp errors surface as DownloadFailed and leftovers are cleaned"""
        factory = fake_ytdlp(
            0, error=yt_dlp.utils.DownloadError('Unsupported URL'), leftovers=('mp4.part',)
        )
        with patch('pipeline.service.download.yt_dlp.YoutubeDL', side_effect=factory):
            with self.assertRaises(DownloadFailed):
                download_video(URL, QualityTier.default(), self.scratch)

        self.assertEqual(len(self.listing()), 1)
        self.scratch.release_all()
        self.assertEqual(self.listing(), [])

    def test_no_content_file_is_download_failed(self):
        """Test that a download producing no video file fails"""
        factory = fake_ytdlp(10, ext='info.json')
        with patch('pipeline.service.download.yt_dlp.YoutubeDL', side_effect=factory):
            with self.assertRaises(DownloadFailed):
                download_video(URL, QualityTier.default(), self.scratch)

    def test_picks_largest_content_file(self):
        """Test that stray small video files are not mistaken for the download"""
        factory = fake_ytdlp(3 * MIB, leftovers=('f137.webm',))
        with patch('pipeline.service.download.yt_dlp.YoutubeDL', side_effect=factory):
            path = download_video(URL, QualityTier.default(), self.scratch)

        self.assertEqual(path.suffix, '.mp4')

    def test_wrapped_timeout_is_unwrapped(self):
        """Test that a deadline hit inside yt-dlp surfaces as InvocationTimeout"""
        timeout = InvocationTimeout('Download timed out after 1s', timeout=1)
        error = yt_dlp.utils.DownloadError('ERROR: timed out', exc_info=(type(timeout), timeout, None))
        factory = fake_ytdlp(0, error=error)
        with patch('pipeline.service.download.yt_dlp.YoutubeDL', side_effect=factory):
            with self.assertRaises(InvocationTimeout):
                download_video(URL, QualityTier.default(), self.scratch, timeout=1)

    def test_deadline_hook(self):
        """Test that the hook only fires after the deadline"""
        hook = _deadline_hook(time.monotonic() + 60, 60)
        hook({'status': 'downloading'})

        expired = _deadline_hook(time.monotonic() - 1, 5)
        with self.assertRaises(InvocationTimeout):
            expired({'status': 'downloading'})


class AcquireVideoTest(DownloadTestCase):
    """Tests for acquire_video"""

    def acquire(self, download_size, invoker=None, quality=None):
        notes = []
        factory = fake_ytdlp(download_size)
        with patch('pipeline.service.download.yt_dlp.YoutubeDL', side_effect=factory):
            artifact = acquire_video(
                URL,
                quality or QualityTier.default(),
                self.scratch,
                notify=notes.append,
                invoker=invoker,
            )
        return artifact, notes

    def test_small_video_is_delivered_untouched(self):
        """Test that a 5 MiB download goes out as video without trimming"""
        invoker = FakeInvoker()
        artifact, notes = self.acquire(5 * MIB, invoker=invoker)

        self.assertEqual(artifact.media_type, MediaType.VIDEO)
        self.assertEqual(artifact.size_bytes, 5 * MIB)
        self.assertEqual(artifact.note, VIDEO_READY_NOTE)
        self.assertTrue(artifact.path.name.endswith('_download.mp4'))
        self.assertEqual(invoker.calls, [])
        self.assertEqual(notes, ['Baixando vídeo (otimizada ~720p)... ⏳'])

    def test_exactly_at_ceiling_is_inline(self):
        """Test that 16 MiB is still within the ceiling"""
        invoker = FakeInvoker()
        artifact, _ = self.acquire(16 * MIB, invoker=invoker)

        self.assertEqual(artifact.media_type, MediaType.VIDEO)
        self.assertEqual(invoker.calls, [])

    def test_large_video_is_trimmed(self):
        """Test that a trim that fits is delivered as video"""
        invoker = FakeInvoker(sizes=[9 * MIB])
        artifact, notes = self.acquire(40 * MIB, invoker=invoker)

        self.assertEqual(artifact.media_type, MediaType.VIDEO)
        self.assertEqual(artifact.size_bytes, 9 * MIB)
        self.assertTrue(artifact.path.name.endswith('_cut.mp4'))
        self.assertEqual(len(invoker.calls), 1)
        self.assertEqual(notes[1], TRIMMED_NOTE)

    def test_trim_still_too_large_sends_original_as_document(self):
        """Test that a 25 MiB download whose trim is 20 MiB goes out as a document"""
        invoker = FakeInvoker(sizes=[20 * MIB])
        artifact, notes = self.acquire(25 * MIB, invoker=invoker)

        self.assertEqual(artifact.media_type, MediaType.DOCUMENT)
        self.assertEqual(artifact.size_bytes, 25 * MIB)
        self.assertTrue(artifact.path.name.endswith('_download.mp4'))
        self.assertEqual(artifact.note, 'Ainda grande (25.0 MB), enviado como documento! 📄')
        self.assertEqual(len(notes), 2)

        # both files stay owned until the job is cleaned up
        self.assertEqual(len(self.listing()), 2)
        self.scratch.release_all()
        self.assertEqual(self.listing(), [])

    def test_trim_failure_is_download_failed(self):
        """Test that ffmpeg failing on the trim is reported as a download failure"""
        invoker = FakeInvoker(returncodes=[1])
        with self.assertRaises(DownloadFailed):
            self.acquire(30 * MIB, invoker=invoker)

    def test_trim_timeout_propagates(self):
        """Test that a trim timeout is not rewrapped"""
        invoker = FakeInvoker(error=InvocationTimeout('ffmpeg timed out', timeout=120))
        with self.assertRaises(InvocationTimeout):
            self.acquire(30 * MIB, invoker=invoker)

    @override_settings(BACHAT_INLINE_MEDIA_MAX_BYTES=1 * MIB)
    def test_ceiling_follows_settings(self):
        """Test that the inline ceiling is configurable"""
        invoker = FakeInvoker(sizes=[512 * 1024])
        artifact, _ = self.acquire(2 * MIB, invoker=invoker)

        self.assertEqual(artifact.media_type, MediaType.VIDEO)
        self.assertEqual(len(invoker.calls), 1)
