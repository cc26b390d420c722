"""
External tool invocation.

Transcoders run as blocking subprocesses behind a small capability
interface, invoke(command, args, timeout) -> ExitStatus, so that the
sticker and video logic can be exercised against a fake invoker.
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path

from pipeline.service.config import get_codec_timeout, get_ffmpeg_bin
from pipeline.service.errors import CodecInvocationFailed, InvocationTimeout


@dataclass
class ExitStatus:
    """Captured result of one external command"""

    returncode: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self):
        return self.returncode == 0


class SubprocessInvoker:
    """Runs commands with subprocess.run and a hard timeout"""

    def invoke(self, command, args, timeout):
        """
        Run a command and wait for it.

        Args:
            command: Executable name or path
            args: List of arguments
            timeout: Wall-clock limit in seconds

        Returns:
            ExitStatus

        Raises:
            InvocationTimeout: If the process outlives the timeout (it is killed)
            CodecInvocationFailed: If the executable cannot be started
        """
        cmd = [str(command)] + [str(a) for a in args]
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, errors='replace', timeout=timeout
            )
        except subprocess.TimeoutExpired as e:
            raise InvocationTimeout(f'{command} timed out after {timeout}s', timeout=timeout) from e
        except OSError as e:
            raise CodecInvocationFailed(f'Could not start {command}: {e}') from e

        return ExitStatus(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)


def run_ffmpeg(args, output_path, invoker=None, timeout=None, logger=None):
    """
    Run ffmpeg and check that it produced output_path.

    Args:
        args: ffmpeg arguments (without the executable)
        output_path: File ffmpeg is expected to write
        invoker: Object with invoke(command, args, timeout) (default: SubprocessInvoker)
        timeout: Wall-clock limit in seconds (default from settings)
        logger: Optional callable(str) for logging

    Returns:
        Path to the output file

    Raises:
        CodecInvocationFailed: Non-zero exit or missing output file
        InvocationTimeout: ffmpeg exceeded the timeout
    """

    def log(message):
        if logger:
            logger(message)

    invoker = invoker or SubprocessInvoker()
    timeout = timeout if timeout is not None else get_codec_timeout()
    output_path = Path(output_path)
    command = get_ffmpeg_bin()

    log(f"Running: {command} {' '.join(str(a) for a in args)}")

    status = invoker.invoke(command, args, timeout)

    if not status.ok:
        log(f'ffmpeg stderr: {status.stderr}')
        raise CodecInvocationFailed(
            f'ffmpeg failed with code {status.returncode}',
            returncode=status.returncode,
            stderr=status.stderr,
        )

    if not output_path.exists():
        raise CodecInvocationFailed(f'ffmpeg exited cleanly but did not write {output_path.name}')

    log(f'ffmpeg wrote {output_path.name} ({output_path.stat().st_size} bytes)')
    return output_path
