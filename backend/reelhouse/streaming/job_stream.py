"""
Per-job progress stream.

Pushes job state to one connected consumer as server-sent events,
backed by a fixed-interval poll of the job store.

State machine:
    OPEN → push current snapshot
         → (POLL → compare → [no change: idle] | [change: PUSH])*
         → CLOSE on terminal state, missing job, store error, or disconnect

There is no buffering or replay: a consumer that reconnects receives the
then-current snapshot only. Closing a stream never affects the job.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

from ..jobs.models import Job, JobStatus
from ..jobs.store import JobStore

logger = logging.getLogger(__name__)


DEFAULT_POLL_INTERVAL_SECONDS = 0.2

EVENT_JOB_UPDATE = "job_update"
EVENT_ERROR = "error"

MESSAGE_NOT_FOUND = "Job not found"
MESSAGE_POLLING_FAILED = "Polling failed"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Cache-Control",
}


class StreamingTransportError(Exception):
    """An event could not be delivered to the consumer."""
    pass


def job_update_event(job: Job) -> Dict[str, Any]:
    return {"type": EVENT_JOB_UPDATE, "job": job.to_public_dict()}


def error_event(message: str) -> Dict[str, Any]:
    return {"type": EVENT_ERROR, "message": message}


def encode_sse(event: Dict[str, Any]) -> bytes:
    """
    Frame one event as a server-sent event.

    Raises:
        StreamingTransportError: If the event cannot be serialized
    """
    try:
        payload = json.dumps(event, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise StreamingTransportError(f"Cannot encode event: {e}") from e
    return f"data: {payload}\n\n".encode("utf-8")


class JobProgressStream:
    """
    Polls one job and yields an envelope whenever status or progress moves.

    Usage:
        stream = JobProgressStream(store, job_id, is_disconnected=request.is_disconnected)
        return StreamingResponse(stream.sse(), media_type="text/event-stream")
    """

    def __init__(
        self,
        store: JobStore,
        job_id: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.job_id = job_id
        self.poll_interval = poll_interval
        self._is_disconnected = is_disconnected
        self._sleep = sleep
        self.pushed = 0

    async def events(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield job_update / error envelopes until the stream should close."""
        try:
            job = self.store.get(self.job_id)
        except Exception:
            logger.exception(f"[Stream] Reading job {self.job_id} failed")
            yield self._count(error_event(MESSAGE_POLLING_FAILED))
            return

        if job is None:
            logger.info(f"[Stream] Job {self.job_id} not found on open")
            yield self._count(error_event(MESSAGE_NOT_FOUND))
            return

        # Consumers never start blind, even if nothing changed since creation.
        yield self._count(job_update_event(job))
        last = _snapshot(job)
        if job.is_terminal:
            logger.info(f"[Stream] Job {self.job_id} already {job.status.value}, closing")
            return

        while True:
            await self._sleep(self.poll_interval)

            if self._is_disconnected is not None and await self._is_disconnected():
                logger.info(f"[Stream] Consumer of job {self.job_id} disconnected")
                return

            try:
                current = self.store.get(self.job_id)
            except Exception:
                logger.exception(f"[Stream] Polling job {self.job_id} failed")
                yield self._count(error_event(MESSAGE_POLLING_FAILED))
                return

            if current is None:
                logger.info(f"[Stream] Job {self.job_id} disappeared")
                yield self._count(error_event(MESSAGE_NOT_FOUND))
                return

            snapshot = _snapshot(current)
            if snapshot != last:
                yield self._count(job_update_event(current))
                last = snapshot

            if current.is_terminal:
                logger.info(f"[Stream] Job {self.job_id} {current.status.value}, closing")
                return

    async def sse(self) -> AsyncIterator[bytes]:
        """events() framed as server-sent events."""
        logger.info(f"[Stream] Opened for job {self.job_id}")
        try:
            async for event in self.events():
                yield encode_sse(event)
        except StreamingTransportError as e:
            logger.error(f"[Stream] Job {self.job_id}: {e}")
        finally:
            logger.info(f"[Stream] Closed for job {self.job_id} after {self.pushed} event(s)")

    def _count(self, event: Dict[str, Any]) -> Dict[str, Any]:
        self.pushed += 1
        return event


def _snapshot(job: Job) -> Tuple[JobStatus, int]:
    return job.status, job.progress
