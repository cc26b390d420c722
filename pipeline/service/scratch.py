"""
Scratch file store.

Every intermediate file (inbound blob, download, transcode, sticker) lives in
one flat scratch directory. File names start with a nanosecond timestamp
followed by a short NanoID and a role suffix, so concurrent jobs can share
the directory without locking.
"""

import time
from pathlib import Path

from nanoid import generate

from pipeline.service.config import get_scratch_dir

NAME_ALPHABET = 'abcdefghijklmnopqrstuvwxyz0123456789'


def ensure_scratch_dir(directory=None):
    """
    Create the scratch directory if it doesn't exist.

    Args:
        directory: Scratch directory (default from settings)

    Returns:
        Path: The scratch directory
    """
    scratch_dir = Path(directory) if directory else get_scratch_dir()
    scratch_dir.mkdir(parents=True, exist_ok=True)
    return scratch_dir


def scratch_name(role, extension):
    """
    Build a time-ordered scratch file name.

    Args:
        role: What the file is for, e.g. 'download', 'anim', 'cut'
        extension: File extension including the dot, e.g. '.mp4'

    Returns:
        str: e.g. '1760700000123456789_k3x9q2ab_anim.webp'
    """
    return f'{time.time_ns()}_{generate(NAME_ALPHABET, size=8)}_{role}{extension}'


def release_file(path, logger=None):
    """
    Delete a scratch file, swallowing any error.

    Deletion failures never affect a response already computed, so they are
    logged and dropped.

    Returns:
        bool: True if the file was removed
    """

    def log(message):
        if logger:
            logger(message)

    path = Path(path)
    try:
        path.unlink()
        log(f'Released scratch file: {path.name}')
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        log(f'Failed to release scratch file {path.name}: {e}')
        return False


class ScratchSet:
    """
    The scratch files owned by one job.

    Use as a context manager: everything created or adopted through the set
    is deleted on exit, whether the job succeeded or not.

        with ScratchSet() as scratch:
            out = scratch.new_path('anim', '.webp')
            ...
    """

    def __init__(self, directory=None, logger=None):
        self.directory = ensure_scratch_dir(directory)
        self.logger = logger
        self._owned = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release_all()
        return False

    @property
    def owned(self):
        """Paths currently owned by this set, oldest first"""
        return list(self._owned)

    def new_path(self, role, extension):
        """Reserve a fresh scratch path owned by this set (the file is not created)."""
        path = self.directory / scratch_name(role, extension)
        self._owned.append(path)
        return path

    def adopt(self, path):
        """Take ownership of a file created elsewhere, e.g. the inbound media blob."""
        path = Path(path)
        if path not in self._owned:
            self._owned.append(path)
        return path

    def release(self, path):
        """Delete one owned file now and stop tracking it."""
        path = Path(path)
        if path in self._owned:
            self._owned.remove(path)
        return release_file(path, logger=self.logger)

    def release_all(self):
        """
        Delete every owned file. Safe to call more than once.

        Returns:
            int: Number of files actually removed
        """
        removed = 0
        while self._owned:
            path = self._owned.pop()
            if release_file(path, logger=self.logger):
                removed += 1
        return removed


def find_stale_files(max_age_minutes, directory=None, now=None):
    """
    List scratch files older than max_age_minutes.

    Used by the cleanup_scratch command to collect files left behind by
    crashed workers.

    Returns:
        list[tuple[Path, float]]: (path, age in seconds), oldest first
    """
    scratch_dir = Path(directory) if directory else get_scratch_dir()
    if not scratch_dir.exists():
        return []

    now = now if now is not None else time.time()
    max_age = max_age_minutes * 60
    stale = []
    for path in scratch_dir.iterdir():
        if not path.is_file():
            continue
        age = now - path.stat().st_mtime
        if age > max_age:
            stale.append((path, age))
    stale.sort(key=lambda item: item[1], reverse=True)
    return stale
