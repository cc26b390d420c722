"""
Tests for service/jobs.py
"""

import tempfile
from pathlib import Path

from django.test import SimpleTestCase

from pipeline.service.jobs import (
    Artifact,
    JobKind,
    JobOutcome,
    JobState,
    MediaJob,
    MediaType,
    QualityTier,
    StickerMode,
)


class QualityTierTest(SimpleTestCase):
    """Tests for quality tier normalization"""

    def test_allowed_heights(self):
        """Test that every enumerated height is kept"""
        for height in (360, 480, 720, 1080, 1440, 2160):
            tier = QualityTier.fixed_height(height)
            self.assertEqual(tier.kind, 'height')
            self.assertEqual(tier.max_height, height)

    def test_unsupported_height_is_default(self):
        """Test that a height outside the set behaves like the default tier"""
        self.assertEqual(QualityTier.fixed_height(9999), QualityTier.default())
        self.assertEqual(QualityTier.fixed_height(0), QualityTier.default())
        self.assertEqual(QualityTier.fixed_height('abc'), QualityTier.default())

    def test_default_caps_at_720(self):
        """Test the default tier's effective cap"""
        self.assertEqual(QualityTier.default().max_height, 720)

    def test_max_has_no_cap(self):
        """Test the max tier has no height cap"""
        self.assertIsNone(QualityTier.maximum().max_height)

    def test_parse(self):
        """Test parsing user-supplied quality strings"""
        self.assertEqual(QualityTier.parse('max'), QualityTier.maximum())
        self.assertEqual(QualityTier.parse('MELHOR'), QualityTier.maximum())
        self.assertEqual(QualityTier.parse('1080'), QualityTier.fixed_height(1080))
        self.assertEqual(QualityTier.parse('9999'), QualityTier.default())
        self.assertEqual(QualityTier.parse('hd'), QualityTier.default())
        self.assertEqual(QualityTier.parse(None), QualityTier.default())

    def test_describe(self):
        """Test labels used in progress notes"""
        self.assertEqual(QualityTier.default().describe(), 'otimizada ~720p')
        self.assertEqual(QualityTier.maximum().describe(), 'máxima')
        self.assertEqual(QualityTier.fixed_height(480).describe(), '480p')


class MediaJobTest(SimpleTestCase):
    """Tests for MediaJob"""

    def test_defaults(self):
        """Test that a job defaults to standard mode and default quality"""
        job = MediaJob(kind=JobKind.STICKER, source_ref=Path('/tmp/in.jpg'))
        self.assertEqual(job.mode, StickerMode.STANDARD)
        self.assertEqual(job.quality, QualityTier.default())
        self.assertFalse(job.animated)
        self.assertEqual(len(job.guid), 12)

    def test_job_is_immutable(self):
        """Test that jobs cannot be changed after creation"""
        job = MediaJob(kind=JobKind.VIDEO_DOWNLOAD, source_ref='https://example.com/v')
        with self.assertRaises(Exception):
            job.mode = StickerMode.EXPANDED

    def test_from_dict_restores_job(self):
        """Test that an enqueued job comes back identical"""
        job = MediaJob(
            kind=JobKind.STICKER,
            source_ref=Path('/tmp/in.mp4'),
            mode=StickerMode.EXPANDED,
            animated=True,
            recipient='5598999999999',
        )
        self.assertEqual(MediaJob.from_dict(job.to_dict()), job)

    def test_from_dict_normalizes_bad_height(self):
        """Test that a tampered height falls back to the default tier"""
        job = MediaJob.from_dict(
            {
                'kind': 'video_download',
                'source_ref': 'https://example.com/v',
                'quality': {'kind': 'height', 'height': 9999},
            }
        )
        self.assertEqual(job.quality, QualityTier.default())
        self.assertEqual(job.source_ref, 'https://example.com/v')


class ArtifactTest(SimpleTestCase):
    """Tests for Artifact"""

    def test_measure_reads_size_from_disk(self):
        """Test that size_bytes is the on-disk size"""
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / 'sticker.webp'
            path.write_bytes(b'x' * 321)
            artifact = Artifact.measure(path, MediaType.STATIC_STICKER)
            self.assertEqual(artifact.size_bytes, 321)

            path.write_bytes(b'x' * 10)
            self.assertEqual(artifact.remeasure().size_bytes, 10)

    def test_is_sticker(self):
        """Test sticker media types"""
        self.assertTrue(MediaType.STATIC_STICKER.is_sticker)
        self.assertTrue(MediaType.ANIMATED_STICKER.is_sticker)
        self.assertFalse(MediaType.VIDEO.is_sticker)
        self.assertFalse(MediaType.DOCUMENT.is_sticker)


class JobOutcomeTest(SimpleTestCase):
    """Tests for JobOutcome"""

    def test_advance_records_history(self):
        """Test that states are appended in order"""
        outcome = JobOutcome(job=MediaJob(kind=JobKind.STICKER, source_ref=Path('/tmp/a.png')))
        outcome.advance(JobState.CLASSIFIED)
        outcome.advance(JobState.FAILED)
        self.assertEqual(
            outcome.history, [JobState.RECEIVED, JobState.CLASSIFIED, JobState.FAILED]
        )
        self.assertEqual(outcome.state, JobState.FAILED)
        self.assertFalse(outcome.succeeded)
