"""
FFmpeg process runner.

Design rules:
- One child process per encode
- stdout/stderr captured (never inherited by the server's terminal)
- Full stderr kept for the failure message
- Non-zero exit code = ProcessFailure
- Missing/unrunnable binary = ProcessLaunchFailure
- Hard timeout: SIGTERM → SIGKILL escalation, then ProcessTimeout
- Progress parsed live from stderr (see progress.py)
"""

import asyncio
import codecs
import logging
import os
import shutil
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .errors import ProcessFailure, ProcessLaunchFailure, ProcessTimeout
from .progress import (
    DEFAULT_ASSUMED_FRAME_RATE,
    DEFAULT_FINALIZING_PROGRESS,
    DEFAULT_MAX_UPDATES,
    ProgressParser,
    format_progress_bar,
)

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT_SECONDS = 10 * 60
DEFAULT_KILL_GRACE_SECONDS = 5.0
READ_CHUNK_SIZE = 4096

COMMON_FFMPEG_PATHS = [
    "/usr/local/bin/ffmpeg",
    "/usr/bin/ffmpeg",
    "/opt/homebrew/bin/ffmpeg",
]


def find_ffmpeg(configured: Optional[str] = None) -> str:
    """
    Resolve the ffmpeg binary.

    Order: explicit configuration, PATH, common install locations.
    Falls back to the bare name so a missing install surfaces as a
    ProcessLaunchFailure when a job actually runs.
    """
    if configured:
        return configured

    found = shutil.which("ffmpeg")
    if found:
        return found

    for path in COMMON_FFMPEG_PATHS:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path

    return "ffmpeg"


@dataclass
class ProgressHooks:
    """Callbacks fired while an encode runs."""

    on_progress: Optional[Callable[[int], None]] = None
    on_stderr: Optional[Callable[[str], None]] = None
    on_duration: Optional[Callable[[float], None]] = None


@dataclass
class FFmpegInvocation:
    """One encode: arguments, optional length clamp, and hooks."""

    args: List[str]
    target_duration: Optional[float] = None
    hooks: ProgressHooks = field(default_factory=ProgressHooks)


class FFmpegRunner:
    """
    Runs FFmpeg as an asyncio child process and reports progress.

    Multiple runs may be in flight at once; the runner holds no
    per-run state.
    """

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
        finalizing_progress: int = DEFAULT_FINALIZING_PROGRESS,
        max_progress_updates: int = DEFAULT_MAX_UPDATES,
        assumed_frame_rate: float = DEFAULT_ASSUMED_FRAME_RATE,
        show_progress_in_terminal: bool = False,
    ):
        self.ffmpeg_path = find_ffmpeg(ffmpeg_path)
        self.timeout_seconds = timeout_seconds
        self.kill_grace_seconds = kill_grace_seconds
        self.finalizing_progress = finalizing_progress
        self.max_progress_updates = max_progress_updates
        self.assumed_frame_rate = assumed_frame_rate
        self.show_progress_in_terminal = show_progress_in_terminal

    async def run(self, invocation: FFmpegInvocation) -> None:
        """
        Execute one encode.

        Returns normally on exit code 0 (after reporting 100%).

        Raises:
            ProcessLaunchFailure: The binary could not be started
            ProcessFailure: FFmpeg exited non-zero
            ProcessTimeout: FFmpeg did not finish within timeout_seconds
        """
        hooks = invocation.hooks
        cmd = [self.ffmpeg_path, *invocation.args]
        logger.info(f"[FFmpeg] Executing: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"[FFmpeg] Failed to start {self.ffmpeg_path}: {e}")
            raise ProcessLaunchFailure(self.ffmpeg_path, str(e)) from e

        logger.info(f"[FFmpeg] Started PID {process.pid}")

        def _progress(value: int) -> None:
            self._draw(value, parser)
            _notify(hooks.on_progress, value)

        parser = ProgressParser(
            target_duration=invocation.target_duration,
            on_progress=_progress,
            on_duration=lambda d: _notify(hooks.on_duration, d),
            finalizing_progress=self.finalizing_progress,
            max_updates=self.max_progress_updates,
            assumed_frame_rate=self.assumed_frame_rate,
        )
        if parser.duration is not None:
            logger.info(f"[FFmpeg] Using target duration: {parser.duration:g}s")
            _notify(hooks.on_duration, parser.duration)

        stderr_parts: List[str] = []

        async def _pump_stderr() -> None:
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            while True:
                data = await process.stderr.read(READ_CHUNK_SIZE)
                if not data:
                    break
                text = decoder.decode(data)
                if not text:
                    continue
                stderr_parts.append(text)
                _notify(hooks.on_stderr, text)
                parser.feed(text)
            tail = decoder.decode(b"", final=True)
            if tail:
                stderr_parts.append(tail)
                parser.feed(tail)
            parser.flush()

        async def _drain_stdout() -> None:
            while await process.stdout.read(READ_CHUNK_SIZE):
                pass

        try:
            await asyncio.wait_for(
                asyncio.gather(_pump_stderr(), _drain_stdout(), process.wait()),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"[FFmpeg] PID {process.pid} timed out after {self.timeout_seconds:g}s "
                f"(progress {parser.last_progress}%, updates {parser.update_count})"
            )
            await self._terminate(process)
            self._finish_line(success=False)
            raise ProcessTimeout(self.timeout_seconds, "".join(stderr_parts))
        except asyncio.CancelledError:
            logger.warning(f"[FFmpeg] Run cancelled, stopping PID {process.pid}")
            await self._terminate(process)
            raise

        exit_code = process.returncode
        stderr = "".join(stderr_parts)
        logger.info(
            f"[FFmpeg] PID {process.pid} exited with code {exit_code} "
            f"(progress {parser.last_progress}%, updates {parser.update_count}, "
            f"finalizing={parser.is_finalizing})"
        )

        if exit_code != 0:
            self._finish_line(success=False)
            logger.error(f"[FFmpeg] Failed: {stderr.strip()}")
            raise ProcessFailure(exit_code, stderr)

        parser.complete()
        self._finish_line(success=True)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """SIGTERM first, SIGKILL if the process ignores it."""
        if process.returncode is not None:
            return
        try:
            logger.info(f"[FFmpeg] Sending SIGTERM to PID {process.pid}")
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_grace_seconds)
            except asyncio.TimeoutError:
                logger.warning(f"[FFmpeg] PID {process.pid} did not terminate, sending SIGKILL")
                process.kill()
                await process.wait()
        except ProcessLookupError:
            pass  # Process already dead

    def _draw(self, progress: int, parser: ProgressParser) -> None:
        if not self.show_progress_in_terminal:
            return
        position = parser.duration if parser.is_finalizing else parser.position
        sys.stdout.write(f"\rEncoding: {format_progress_bar(progress, position, parser.duration)}")
        sys.stdout.flush()

    def _finish_line(self, success: bool) -> None:
        if not self.show_progress_in_terminal:
            return
        if success:
            sys.stdout.write(f"\rEncoding complete: {format_progress_bar(100)}\n")
        else:
            sys.stdout.write(f"\rEncoding failed: {format_progress_bar(0)}\n")
        sys.stdout.flush()


def _notify(callback: Optional[Callable], value) -> None:
    """Invoke a hook; a failing hook must not abort the encode."""
    if callback is None:
        return
    try:
        callback(value)
    except Exception:
        logger.exception("[FFmpeg] Progress hook raised")
