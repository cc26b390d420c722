"""
Sticker transformer.

Turns one inbound image or short video into a WebP sticker on a square
canvas. Static stickers are rendered with Pillow; animated stickers are
transcoded with ffmpeg and measured afterwards. An animated result over the
channel ceiling is discarded and replaced by a static sticker of the same
source.
"""

from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from pipeline.service.config import get_animated_sticker_max_bytes, get_sticker_size
from pipeline.service.constants import (
    ANIMATED_STICKER_FPS,
    ANIMATED_STICKER_MAX_SECONDS,
    ANIMATED_STICKER_QUALITY,
    STATIC_STICKER_QUALITY,
    STICKER_EXTENSION,
)
from pipeline.service.errors import CodecInvocationFailed, SizeCeilingExceeded
from pipeline.service.invoker import run_ffmpeg
from pipeline.service.jobs import Artifact, MediaType, StickerMode

FALLBACK_NOTE = 'Animação grande demais, enviei como figurinha estática.'


def build_canvas_filter(mode, size):
    """
    ffmpeg filter chain that maps any frame onto a size x size canvas.

    STANDARD scales down to fit and pads with transparency (contain);
    EXPANDED scales up to cover and crops the overflow (cover).
    """
    if mode == StickerMode.EXPANDED:
        return (
            f'scale={size}:{size}:force_original_aspect_ratio=increase,'
            f'crop={size}:{size}'
        )
    return (
        f'scale={size}:{size}:force_original_aspect_ratio=decrease,'
        f'format=rgba,'
        f'pad={size}:{size}:(ow-iw)/2:(oh-ih)/2:color=black@0'
    )


def build_animated_sticker_args(input_path, output_path, mode, size=None):
    """
    ffmpeg arguments for an animated WebP sticker.

    Bounded to ANIMATED_STICKER_MAX_SECONDS at ANIMATED_STICKER_FPS, with a
    generated palette to keep the file small.
    """
    size = size or get_sticker_size()
    video_filter = (
        f'fps={ANIMATED_STICKER_FPS},'
        f'{build_canvas_filter(mode, size)},'
        'split[s0][s1];[s0]palettegen=reserve_transparent=1[p];[s1][p]paletteuse'
    )
    return [
        '-y',
        '-i', str(input_path),
        '-t', str(ANIMATED_STICKER_MAX_SECONDS),
        '-vf', video_filter,
        '-an',
        '-loop', '0',
        '-c:v', 'libwebp',
        '-quality', str(ANIMATED_STICKER_QUALITY),
        str(output_path),
    ]


def fit_to_canvas(img, mode, size):
    """
    Fit a Pillow image onto a transparent size x size canvas.

    Returns:
        PIL.Image.Image in RGBA mode, exactly size x size
    """
    img = ImageOps.exif_transpose(img)
    if img.mode != 'RGBA':
        img = img.convert('RGBA')

    if mode == StickerMode.EXPANDED:
        return ImageOps.fit(img, (size, size), method=Image.LANCZOS, centering=(0.5, 0.5))
    return ImageOps.pad(img, (size, size), method=Image.LANCZOS, color=(0, 0, 0, 0))


def extract_first_frame(video_path, output_path, invoker=None, logger=None):
    """Grab the first frame of a video as PNG so Pillow can read it."""
    args = ['-y', '-i', str(video_path), '-frames:v', '1', str(output_path)]
    return run_ffmpeg(args, output_path, invoker=invoker, logger=logger)


def create_static_sticker(source_path, mode, scratch, invoker=None, size=None, note=None, logger=None):
    """
    Render a static WebP sticker.

    Args:
        source_path: Inbound image (or video, whose first frame is used)
        mode: StickerMode
        scratch: ScratchSet owning the output
        invoker: Invoker used if a frame must be extracted from a video
        size: Canvas edge in pixels (default from settings)
        note: Optional note carried on the artifact
        logger: Optional callable(str) for logging

    Returns:
        Artifact with media_type STATIC_STICKER

    Raises:
        CodecInvocationFailed: If the source can't be decoded or encoding fails
    """

    def log(message):
        if logger:
            logger(message)

    size = size or get_sticker_size()
    source_path = Path(source_path)
    output_path = scratch.new_path('sticker', STICKER_EXTENSION)
    frame_path = None

    try:
        try:
            img = Image.open(source_path)
        except UnidentifiedImageError:
            # Not a still image; fall back to the first video frame
            log(f'Pillow cannot read {source_path.name}, extracting first frame')
            frame_path = scratch.new_path('frame', '.png')
            extract_first_frame(source_path, frame_path, invoker=invoker, logger=logger)
            img = Image.open(frame_path)

        with img:
            canvas = fit_to_canvas(img, mode, size)
            canvas.save(output_path, 'WEBP', quality=STATIC_STICKER_QUALITY, method=4)
    except (OSError, ValueError) as e:
        scratch.release(output_path)
        raise CodecInvocationFailed(f'Static sticker encoding failed: {e}') from e
    finally:
        if frame_path is not None:
            scratch.release(frame_path)

    artifact = Artifact.measure(output_path, MediaType.STATIC_STICKER, note=note)
    log(f'Static sticker ready: {output_path.name} ({artifact.size_bytes} bytes, mode={mode.value})')
    return artifact


def create_animated_sticker(source_path, mode, scratch, invoker=None, size=None, logger=None):
    """
    Transcode a video or GIF into an animated WebP sticker.

    Returns:
        Artifact with media_type ANIMATED_STICKER

    Raises:
        SizeCeilingExceeded: Output is over the animated sticker ceiling (file already released)
        CodecInvocationFailed: ffmpeg failed (partial output already released)
        InvocationTimeout: ffmpeg was killed after the codec timeout
    """

    def log(message):
        if logger:
            logger(message)

    output_path = scratch.new_path('anim', STICKER_EXTENSION)
    args = build_animated_sticker_args(source_path, output_path, mode, size=size)

    try:
        run_ffmpeg(args, output_path, invoker=invoker, logger=logger)
    except Exception:
        scratch.release(output_path)
        raise

    artifact = Artifact.measure(output_path, MediaType.ANIMATED_STICKER)
    ceiling = get_animated_sticker_max_bytes()
    if artifact.size_bytes > ceiling:
        log(f'Animated sticker too large: {artifact.size_bytes} > {ceiling} bytes')
        scratch.release(output_path)
        raise SizeCeilingExceeded(artifact.size_bytes, ceiling)

    log(f'Animated sticker ready: {output_path.name} ({artifact.size_bytes} bytes)')
    return artifact


def transform_sticker(blob, mode, animated, scratch, invoker=None, logger=None):
    """
    Produce a sticker artifact from one inbound blob.

    Callers must look at the returned media_type: an animated request comes
    back as STATIC_STICKER when the animation could not be made to fit.

    Args:
        blob: Path to the inbound media in the scratch directory
        mode: StickerMode (STANDARD = contain, EXPANDED = cover)
        animated: True for video/GIF sources
        scratch: ScratchSet that will own the output file
        invoker: Invoker for ffmpeg (default: SubprocessInvoker)
        logger: Optional callable(str) for logging

    Returns:
        Artifact

    Raises:
        CodecInvocationFailed: The static path failed
        InvocationTimeout: An ffmpeg call hit the codec timeout
    """

    def log(message):
        if logger:
            logger(message)

    if animated:
        try:
            return create_animated_sticker(blob, mode, scratch, invoker=invoker, logger=logger)
        except SizeCeilingExceeded as e:
            log(f'Falling back to static sticker: {e}')
        except CodecInvocationFailed as e:
            log(f'Animated sticker failed, falling back to static: {e}')

        return create_static_sticker(
            blob, mode, scratch, invoker=invoker, note=FALLBACK_NOTE, logger=logger
        )

    return create_static_sticker(blob, mode, scratch, invoker=invoker, logger=logger)
