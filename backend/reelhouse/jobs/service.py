"""
Video job orchestration.

Boundary between an inbound creation request and the encoder:
- Validates inputs BEFORE anything is spawned
- Creates the job record synchronously and hands back its id
- Runs the encode in a background asyncio task, decoupled from the
  HTTP request that created it
- Routes runner callbacks into the job store

Failures are captured in the job record; they never escape the task.
"""

import asyncio
import logging
from typing import Optional, Set

from ..execution.commands import build_still_video_args
from ..execution.errors import ExecutionError
from ..execution.ffmpeg import FFmpegInvocation, FFmpegRunner, ProgressHooks
from ..storage.files import FileStore
from .errors import JobError, MissingInputsError
from .models import Job, JobStatus
from .store import JobStore

logger = logging.getLogger(__name__)


DEFAULT_RETENTION_SECONDS = 60 * 60

# Reported as soon as the encoder is launched, so the UI leaves 0%.
STARTED_PROGRESS = 1


class VideoJobService:
    """Creates still-image video jobs and supervises their encodes."""

    def __init__(
        self,
        store: JobStore,
        files: FileStore,
        runner: FFmpegRunner,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
    ):
        self._store = store
        self._files = files
        self._runner = runner
        self._retention_seconds = retention_seconds
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def create_video_job(
        self,
        image_key: str,
        music_key: str,
        duration_sec: Optional[float] = None,
    ) -> Job:
        """
        Accept a video creation request.

        Returns as soon as the job is recorded; encoding continues in
        the background.

        Raises:
            MissingInputsError: If the image or music file does not exist
        """
        self._store.sweep(self._retention_seconds)

        missing = []
        if not self._files.exists(image_key):
            missing.append(f"image file: {image_key}")
        if not self._files.exists(music_key):
            missing.append(f"music file: {music_key}")
        if missing:
            logger.error(f"[Jobs] Input files not found: {missing}")
            raise MissingInputsError(missing)

        output_key = self._files.new_output_key()
        output_path = self._files.resolve(output_key)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        args = build_still_video_args(
            image_path=str(self._files.resolve(image_key)),
            audio_path=str(self._files.resolve(music_key)),
            output_path=str(output_path),
            duration_sec=duration_sec,
        )

        job = self._store.create()
        logger.info(
            f"[Jobs] Video job {job.id} accepted "
            f"(image={image_key}, music={music_key}, duration={duration_sec}, output={output_key})"
        )

        task = asyncio.get_running_loop().create_task(
            self._run(job.id, args, duration_sec, output_key),
            name=f"video-job-{job.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job

    async def _run(
        self,
        job_id: str,
        args: list,
        duration_sec: Optional[float],
        output_key: str,
    ) -> None:
        """Background body of one job. Never raises except on cancellation."""
        invocation = FFmpegInvocation(
            args=args,
            target_duration=duration_sec,
            hooks=ProgressHooks(
                on_progress=lambda value: self._record_progress(job_id, value),
                on_duration=lambda seconds: logger.info(
                    f"[Jobs] Job {job_id} duration: {seconds:g}s"
                ),
            ),
        )

        try:
            self._store.update(job_id, status=JobStatus.RUNNING, progress=STARTED_PROGRESS)
            await self._runner.run(invocation)
        except asyncio.CancelledError:
            self._fail(job_id, "Encoding cancelled: server shutting down")
            raise
        except ExecutionError as e:
            logger.error(f"[Jobs] Job {job_id} failed: {e}")
            self._fail(job_id, str(e))
            return
        except Exception as e:
            logger.exception(f"[Jobs] Job {job_id} crashed")
            self._fail(job_id, f"Unexpected error: {e}")
            return

        try:
            self._store.update(
                job_id,
                status=JobStatus.DONE,
                progress=100,
                result={"key": output_key, "url": self._files.url_for(output_key)},
            )
        except JobError as e:
            logger.exception(f"[Jobs] Could not record completion of job {job_id}")
            self._fail(job_id, f"Could not record result: {e}")
            return
        logger.info(f"[Jobs] Job {job_id} completed: {output_key}")

    def _record_progress(self, job_id: str, progress: int) -> None:
        cached = self._store.cached(job_id)
        if cached is not None and (cached.is_terminal or cached.progress >= progress):
            return
        self._store.update(job_id, progress=progress)

    def _fail(self, job_id: str, message: str) -> None:
        # Progress stays at its last reported value.
        try:
            self._store.update(job_id, status=JobStatus.FAILED, error=message)
        except JobError:
            logger.exception(f"[Jobs] Could not record failure of job {job_id}: {message}")

    async def shutdown(self) -> None:
        """Cancel in-flight encodes and wait for their tasks to settle."""
        tasks = list(self._tasks)
        if not tasks:
            return
        logger.info(f"[Jobs] Cancelling {len(tasks)} running job(s)")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
