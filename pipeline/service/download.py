"""
Video acquisition pipeline.

Downloads a remote video with yt-dlp at a requested quality tier and makes it
deliverable: files within the inline-media ceiling go out as video, larger
ones are trimmed to TRIM_SECONDS and re-measured, and if that still doesn't
fit the untrimmed download goes out as a document.
"""

import time

import yt_dlp

from pipeline.service.config import (
    get_download_timeout,
    get_inline_media_max_bytes,
    get_ytdlp_extra_args,
    get_ytdlp_proxy,
    parse_ytdlp_extra_args,
)
from pipeline.service.constants import MEBIBYTE, TRIM_SECONDS, VIDEO_EXTENSION
from pipeline.service.errors import (
    CodecInvocationFailed,
    DownloadFailed,
    InvocationTimeout,
    SizeCeilingExceeded,
)
from pipeline.service.invoker import run_ffmpeg
from pipeline.service.jobs import Artifact, MediaType

CONTENT_EXTENSIONS = ['.mp4', '.mkv', '.webm', '.mov', '.m4v']

VIDEO_READY_NOTE = 'Vídeo baixado! 🎥'
TRIMMED_NOTE = 'Vídeo grande, cortando para 30s... ✂️'


def build_format_selector(quality):
    """
    Map a QualityTier to a yt-dlp format selector.

    Every tier prefers H.264 (avc1) video with AAC (m4a) audio merged into
    MP4, since that is what the channel plays inline.

    Args:
        quality: QualityTier

    Returns:
        str: yt-dlp format selector
    """
    if quality.kind == 'max':
        return 'bestvideo[vcodec^=avc1]+bestaudio[ext=m4a]/best'

    height = quality.max_height
    if quality.kind == 'height':
        return f'bestvideo[height<={height}][vcodec^=avc1]+bestaudio[ext=m4a]/best[height<={height}]'

    return (
        f'bestvideo[height<={height}][ext=mp4][vcodec^=avc1]+bestaudio[ext=m4a]'
        f'/best[height<={height}][ext=mp4]'
        f'/best[height<={height}]'
    )


def progress_note(quality):
    """User-facing note sent before the blocking download starts"""
    return f'Baixando vídeo ({quality.describe()})... ⏳'


def oversized_note(size_bytes):
    """User-facing note for a video that had to go out as a document"""
    return f'Ainda grande ({size_bytes / MEBIBYTE:.1f} MB), enviado como documento! 📄'


def _deadline_hook(deadline, timeout):
    """yt-dlp hook that aborts the download once the wall-clock deadline passes."""

    def hook(d):
        if time.monotonic() > deadline:
            raise InvocationTimeout(f'Download timed out after {timeout}s', timeout=timeout)

    return hook


def _find_timeout(exc):
    """Return the InvocationTimeout wrapped inside a yt-dlp error, if any."""
    seen = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, InvocationTimeout):
            return exc
        seen.add(id(exc))
        exc_info = getattr(exc, 'exc_info', None)
        inner = exc_info[1] if exc_info else None
        exc = inner or exc.__cause__ or exc.__context__
    return None


def build_ytdlp_opts(url, quality, outtmpl, hooks=None, timeout=None, quiet=True):
    """
    Build the YoutubeDL options dict for one download.

    Args:
        url: Source URL
        quality: QualityTier
        outtmpl: yt-dlp output template
        hooks: Progress/postprocessor hooks
        timeout: Socket timeout in seconds
        quiet: Suppress yt-dlp console output

    Returns:
        dict
    """
    ydl_opts = {
        'format': build_format_selector(quality),
        'merge_output_format': 'mp4',
        # Single-file fallbacks (/best) can be webm; the channel plays mp4 only
        'postprocessors': [{'key': 'FFmpegVideoRemuxer', 'preferedformat': 'mp4'}],
        'outtmpl': outtmpl,
        'noplaylist': True,
        'quiet': quiet,
        'no_warnings': quiet,
        'progress_hooks': list(hooks or []),
        'postprocessor_hooks': list(hooks or []),
    }

    if timeout:
        ydl_opts['socket_timeout'] = min(timeout, 60)

    # Enable file:// URLs if needed
    if url.startswith('file://'):
        ydl_opts['enable_file_urls'] = True

    proxy = get_ytdlp_proxy()
    if proxy:
        ydl_opts['proxy'] = proxy

    return parse_ytdlp_extra_args(get_ytdlp_extra_args(), ydl_opts)


def download_video(url, quality, scratch, timeout=None, logger=None):
    """
    Download a video with yt-dlp into the scratch directory.

    Every file yt-dlp leaves behind (merged output, fragments, .part files)
    is adopted by the scratch set, so a failed download still gets cleaned
    up with the job.

    Args:
        url: Source URL
        quality: QualityTier
        scratch: ScratchSet owning the download
        timeout: Wall-clock limit in seconds (default from settings)
        logger: Optional callable(str) for logging

    Returns:
        Path to the downloaded video

    Raises:
        DownloadFailed: Resolution, network or stream-selection failure
        InvocationTimeout: Download exceeded the timeout
    """

    def log(message):
        if logger:
            logger(message)

    timeout = timeout if timeout is not None else get_download_timeout()
    deadline = time.monotonic() + timeout

    base = scratch.new_path('download', '')
    outtmpl = f'{base}.%(ext)s'
    ydl_opts = build_ytdlp_opts(
        url,
        quality,
        outtmpl,
        hooks=[_deadline_hook(deadline, timeout)],
        timeout=timeout,
        quiet=not logger,
    )

    log(f'Downloading with yt-dlp: {url}')
    log(f"Format: {ydl_opts.get('format')}")

    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            ydl.download([url])
    except InvocationTimeout:
        raise
    except (yt_dlp.utils.YoutubeDLError, OSError) as e:
        timed_out = _find_timeout(e)
        if timed_out is not None:
            raise timed_out from e
        raise DownloadFailed(f'Download failed for {url}: {e}') from e
    finally:
        produced = sorted(base.parent.glob(f'{base.name}.*'))
        for path in produced:
            scratch.adopt(path)
        scratch.release(base)

    content_files = [p for p in produced if p.suffix.lower() in CONTENT_EXTENSIONS and p.exists()]
    if not content_files:
        raise DownloadFailed(f'No video file found after yt-dlp download of {url}')

    # Use the largest file as the main content
    content_file = max(content_files, key=lambda p: p.stat().st_size)
    log(f'Main content file: {content_file.name} ({content_file.stat().st_size} bytes)')
    return content_file


def build_trim_args(input_path, output_path, seconds=TRIM_SECONDS):
    """ffmpeg arguments for a deterministic H.264/AAC re-encode of the first `seconds`"""
    return [
        '-y',
        '-i', str(input_path),
        '-t', str(seconds),
        '-c:v', 'libx264',
        '-profile:v', 'high',
        '-pix_fmt', 'yuv420p',
        '-c:a', 'aac',
        '-movflags', '+faststart',
        str(output_path),
    ]


def trim_video(input_path, scratch, invoker=None, seconds=TRIM_SECONDS, logger=None):
    """
    Re-encode the first `seconds` of a video into a new scratch file.

    Returns:
        Path to the trimmed video

    Raises:
        CodecInvocationFailed: ffmpeg failed
        InvocationTimeout: ffmpeg hit the codec timeout
    """
    output_path = scratch.new_path('cut', VIDEO_EXTENSION)
    args = build_trim_args(input_path, output_path, seconds=seconds)
    return run_ffmpeg(args, output_path, invoker=invoker, logger=logger)


def ensure_inline(artifact, ceiling):
    """
    Check that an artifact may be delivered inline.

    Raises:
        SizeCeilingExceeded: artifact.size_bytes is over ceiling
    """
    if artifact.size_bytes > ceiling:
        raise SizeCeilingExceeded(artifact.size_bytes, ceiling)
    return artifact


def acquire_video(url, quality, scratch, notify=None, invoker=None, timeout=None, logger=None):
    """
    Download a video and shape it for delivery.

    Sends one progress note before downloading and a second one if the
    download has to be trimmed. Both the original and the trimmed file stay
    owned by `scratch`; the caller releases them after delivery.

    Args:
        url: Source URL
        quality: QualityTier
        scratch: ScratchSet that will own every file created here
        notify: Optional callable(str) that sends a progress note to the sender
        invoker: Invoker for ffmpeg (default: SubprocessInvoker)
        timeout: Download wall-clock limit in seconds (default from settings)
        logger: Optional callable(str) for logging

    Returns:
        Artifact: VIDEO (original or trimmed) or DOCUMENT (original)

    Raises:
        DownloadFailed: Download or trim failed
        InvocationTimeout: Download or trim exceeded its timeout
    """

    def log(message):
        if logger:
            logger(message)

    def send(text):
        if notify:
            notify(text)

    send(progress_note(quality))

    original_path = download_video(url, quality, scratch, timeout=timeout, logger=logger)
    original = Artifact.measure(original_path, MediaType.VIDEO, note=VIDEO_READY_NOTE)
    ceiling = get_inline_media_max_bytes()

    try:
        return ensure_inline(original, ceiling)
    except SizeCeilingExceeded as e:
        log(f'Download too large for inline delivery: {e}')

    send(TRIMMED_NOTE)

    try:
        trimmed_path = trim_video(original_path, scratch, invoker=invoker, logger=logger)
    except CodecInvocationFailed as e:
        raise DownloadFailed(f'Trimming {original_path.name} failed: {e}') from e

    trimmed = Artifact.measure(trimmed_path, MediaType.VIDEO, note=VIDEO_READY_NOTE)
    try:
        return ensure_inline(trimmed, ceiling)
    except SizeCeilingExceeded as e:
        log(f'Trimmed video still too large, sending original as document: {e}')

    # Never drop the content: the untrimmed download goes out as a document
    return Artifact.measure(
        original_path, MediaType.DOCUMENT, note=oversized_note(original.size_bytes)
    )
