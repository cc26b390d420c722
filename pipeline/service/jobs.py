"""
Job and artifact types passed between pipeline stages.

A MediaJob comes in from the webhook layer, a transformer turns it into an
Artifact, and the uploader's handle ends up in a DeliveryResult.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from nanoid import generate

from pipeline.service.constants import ALLOWED_HEIGHTS, DEFAULT_MAX_HEIGHT


def generate_job_id():
    """Generate NanoID with A-Z a-z 0-9 alphabet"""
    alphabet = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789'
    return generate(alphabet, size=12)


class JobKind(str, Enum):
    STICKER = 'sticker'
    VIDEO_DOWNLOAD = 'video_download'


class StickerMode(str, Enum):
    # Contain-fit: whole source visible, transparent letterbox
    STANDARD = 'standard'
    # Cover-fit: canvas filled, overflow cropped
    EXPANDED = 'expanded'


class MediaType(str, Enum):
    STATIC_STICKER = 'static_sticker'
    ANIMATED_STICKER = 'animated_sticker'
    VIDEO = 'video'
    DOCUMENT = 'document'

    @property
    def is_sticker(self):
        return self in (MediaType.STATIC_STICKER, MediaType.ANIMATED_STICKER)


class JobState(str, Enum):
    RECEIVED = 'received'
    CLASSIFIED = 'classified'
    TRANSFORMING = 'transforming'
    UPLOADING = 'uploading'
    FAILED = 'failed'
    CLEANED = 'cleaned'
    DONE = 'done'


@dataclass(frozen=True)
class QualityTier:
    """
    Requested upper bound on downloaded video resolution.

    kind is 'default' (about 720p), 'max' (no bound) or 'height' (bounded by
    one of ALLOWED_HEIGHTS). Use the constructors below rather than building
    instances by hand: they normalize unsupported heights to the default tier.
    """

    kind: str = 'default'
    height: Optional[int] = None

    @classmethod
    def default(cls):
        return cls('default')

    @classmethod
    def maximum(cls):
        return cls('max')

    @classmethod
    def fixed_height(cls, height):
        """Bounded tier; heights outside ALLOWED_HEIGHTS fall back to default."""
        try:
            height = int(height)
        except (TypeError, ValueError):
            return cls.default()
        if height not in ALLOWED_HEIGHTS:
            return cls.default()
        return cls('height', height)

    @classmethod
    def parse(cls, value):
        """
        Parse a user-supplied quality string.

        Args:
            value: 'default', 'max' / 'melhor', or a height such as '1080'

        Returns:
            QualityTier (default for anything unrecognized)
        """
        if value is None:
            return cls.default()
        text = str(value).strip().lower()
        if text in ('max', 'melhor'):
            return cls.maximum()
        if text.isdigit():
            return cls.fixed_height(int(text))
        return cls.default()

    @property
    def max_height(self):
        """Effective height cap, or None for the max tier"""
        if self.kind == 'max':
            return None
        if self.kind == 'height':
            return self.height
        return DEFAULT_MAX_HEIGHT

    def describe(self):
        """Short user-facing label used in progress notes"""
        if self.kind == 'max':
            return 'máxima'
        if self.kind == 'height':
            return f'{self.height}p'
        return 'otimizada ~720p'


@dataclass(frozen=True)
class MediaJob:
    """
    One unit of work handed over by the webhook layer.

    For sticker jobs source_ref is a file already materialized in the scratch
    directory; for video jobs it is the remote URL.
    """

    kind: JobKind
    source_ref: Union[Path, str]
    mode: StickerMode = StickerMode.STANDARD
    quality: QualityTier = field(default_factory=QualityTier.default)
    animated: bool = False
    recipient: Optional[str] = None
    guid: str = field(default_factory=generate_job_id)

    def to_dict(self):
        """Plain-JSON form, used to enqueue the job on Huey"""
        return {
            'kind': self.kind.value,
            'source_ref': str(self.source_ref),
            'mode': self.mode.value,
            'quality': {'kind': self.quality.kind, 'height': self.quality.height},
            'animated': self.animated,
            'recipient': self.recipient,
            'guid': self.guid,
        }

    @classmethod
    def from_dict(cls, data):
        kind = JobKind(data['kind'])
        source_ref = data['source_ref']
        if kind == JobKind.STICKER:
            source_ref = Path(source_ref)
        quality = data.get('quality') or {}
        if quality.get('kind') == 'max':
            tier = QualityTier.maximum()
        elif quality.get('kind') == 'height':
            tier = QualityTier.fixed_height(quality.get('height'))
        else:
            tier = QualityTier.default()
        return cls(
            kind=kind,
            source_ref=source_ref,
            mode=StickerMode(data.get('mode', StickerMode.STANDARD.value)),
            quality=tier,
            animated=bool(data.get('animated', False)),
            recipient=data.get('recipient'),
            guid=data.get('guid') or generate_job_id(),
        )


@dataclass(frozen=True)
class Artifact:
    """A finished file ready for upload"""

    path: Path
    media_type: MediaType
    size_bytes: int
    note: Optional[str] = None

    @classmethod
    def measure(cls, path, media_type, note=None):
        """Build an Artifact from the file's current size on disk."""
        path = Path(path)
        return cls(path=path, media_type=media_type, size_bytes=path.stat().st_size, note=note)

    def remeasure(self):
        """Same artifact with size_bytes re-read from disk"""
        return Artifact.measure(self.path, self.media_type, note=self.note)


@dataclass(frozen=True)
class DeliveryResult:
    """What the caller renders after a successful delivery"""

    remote_handle: str
    media_type: MediaType
    note: Optional[str] = None


@dataclass
class JobOutcome:
    """Terminal record for one MediaJob: a result or a failure notice, never both"""

    job: MediaJob
    state: JobState = JobState.RECEIVED
    history: List[JobState] = field(default_factory=lambda: [JobState.RECEIVED])
    result: Optional[DeliveryResult] = None
    failure_notice: Optional[str] = None
    error: Optional[Exception] = None

    def advance(self, state):
        self.state = state
        self.history.append(state)

    @property
    def succeeded(self):
        return self.result is not None
