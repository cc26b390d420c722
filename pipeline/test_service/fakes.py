"""
Test doubles for the external boundaries: ffmpeg, yt-dlp and the channel.
"""

from pathlib import Path
from unittest.mock import MagicMock

from PIL import Image

from pipeline.service.invoker import ExitStatus


class FakeInvoker:
    """
    Stands in for ffmpeg.

    Records every call and, on success, writes the output file (the last
    argument) with a chosen size. `sizes` and `returncodes` are consumed one
    per call; the last value repeats. PNG outputs are written as a real image
    so frame extraction can be followed by Pillow.
    """

    def __init__(self, sizes=None, returncodes=None, write_output=True, error=None,
                 frame_size=(640, 360)):
        self.sizes = list(sizes or [1024])
        self.returncodes = list(returncodes or [0])
        self.write_output = write_output
        self.error = error
        self.frame_size = frame_size
        self.calls = []

    @staticmethod
    def _next(values):
        return values.pop(0) if len(values) > 1 else values[0]

    def invoke(self, command, args, timeout):
        self.calls.append((command, list(args), timeout))
        if self.error is not None:
            raise self.error

        returncode = self._next(self.returncodes)
        size = self._next(self.sizes)
        output = Path(args[-1])

        if returncode == 0 and self.write_output:
            if output.suffix == '.png':
                Image.new('RGB', self.frame_size, (0, 128, 255)).save(output)
            else:
                with open(output, 'wb') as f:
                    f.truncate(size)
        elif returncode != 0:
            # ffmpeg often leaves a partial file behind on failure
            output.write_bytes(b'partial')

        return ExitStatus(returncode=returncode, stderr='' if returncode == 0 else 'boom')

    @property
    def outputs(self):
        return [Path(args[-1]) for _, args, _ in self.calls]


class FakeUploader:
    """Records uploads and returns sequential handles"""

    def __init__(self, error=None):
        self.error = error
        self.uploads = []

    def upload(self, path, media_type, size_bytes):
        path = Path(path)
        self.uploads.append(
            {
                'path': path,
                'media_type': media_type,
                'size_bytes': size_bytes,
                'exists': path.exists(),
                'on_disk': path.stat().st_size if path.exists() else None,
            }
        )
        if self.error is not None:
            raise self.error
        return f'media-{len(self.uploads)}'


def fake_ytdlp(size, ext='mp4', error=None, leftovers=()):
    """
    Build a side_effect for a patched yt_dlp.YoutubeDL class.

    The fake writes a sparse file of `size` bytes where yt-dlp would have
    written the merged download, plus any `leftovers` extensions (e.g.
    'part'), then optionally raises `error`.
    """
    seen_opts = []

    def factory(opts):
        seen_opts.append(opts)
        ydl = MagicMock()

        def download(urls):
            template = opts['outtmpl']
            for leftover in leftovers:
                Path(template.replace('%(ext)s', leftover)).write_bytes(b'x')
            if error is not None:
                raise error
            with open(template.replace('%(ext)s', ext), 'wb') as f:
                f.truncate(size)
            return 0

        ydl.download.side_effect = download
        context = MagicMock()
        context.__enter__.return_value = ydl
        context.__exit__.return_value = False
        return context

    factory.seen_opts = seen_opts
    return factory


def make_image(path, size=(200, 100), color=(255, 0, 0)):
    """Write a solid RGB test image and return its path."""
    path = Path(path)
    Image.new('RGB', size, color).save(path)
    return path
