"""
Execution-specific errors.

All errors are non-fatal to the application.
They indicate that one encode failed; the job that owns it is marked
FAILED and the server keeps running.
"""


class ExecutionError(Exception):
    """
    Base exception for encode failures.

    Every failure kind the process runner can produce inherits from this,
    so job orchestration can catch them with a single clause.
    """

    pass


class ProcessLaunchFailure(ExecutionError):
    """
    The encoder binary could not be started at all.

    Raised when:
    - The executable does not exist
    - The executable is not runnable (permission denied)
    """

    def __init__(self, binary: str, reason: str):
        self.binary = binary
        self.reason = reason
        super().__init__(f"Failed to start FFmpeg process: {reason}")


class ProcessFailure(ExecutionError):
    """
    The encoder started and exited with a non-zero code.

    The message carries the full captured diagnostic output, not only the
    last line, so codec/format failures can be diagnosed from the job record.
    """

    def __init__(self, exit_code: int, stderr: str):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"FFmpeg exited with code {exit_code}.\nStderr: {stderr}")


class ProcessTimeout(ExecutionError):
    """The encoder did not exit before the hard timeout and was killed."""

    def __init__(self, timeout_seconds: float, stderr: str = ""):
        self.timeout_seconds = timeout_seconds
        self.stderr = stderr
        super().__init__(f"FFmpeg process timeout after {timeout_seconds:g}s")
