"""
Pipeline error kinds.

Everything except SizeCeilingExceeded reaches the orchestrator, which turns
it into a single failure notice for the sender.
"""


class PipelineError(Exception):
    """Base class for errors raised while processing a MediaJob"""

    pass


class CodecInvocationFailed(PipelineError):
    """Raised when an external tool exits non-zero or produces no output file"""

    def __init__(self, message, returncode=None, stderr=''):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class SizeCeilingExceeded(PipelineError):
    """
    Raised when a transcoded file is larger than the channel allows.

    Always handled next to where it is raised (animated -> static sticker,
    inline video -> document); never surfaced to the caller.
    """

    def __init__(self, size_bytes, ceiling_bytes):
        super().__init__(f'Output is {size_bytes} bytes, ceiling is {ceiling_bytes} bytes')
        self.size_bytes = size_bytes
        self.ceiling_bytes = ceiling_bytes


class DownloadFailed(PipelineError):
    """Raised when a URL cannot be resolved, fetched, or has no matching stream"""

    pass


class InvocationTimeout(PipelineError):
    """Raised when an external call exceeds its wall-clock limit"""

    def __init__(self, message, timeout=None):
        super().__init__(message)
        self.timeout = timeout


class UploadFailed(PipelineError):
    """Raised when the delivery channel rejects or loses an upload"""

    pass
