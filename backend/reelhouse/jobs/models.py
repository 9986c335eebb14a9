"""
Job data model.

A job is one asynchronous encode tracked from request to result.
Jobs are created QUEUED by the creation API and mutated only by
progress/completion callbacks and the retention sweep.

State transitions are validated externally (see state.py); the
payload invariants below are validated by the model itself.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class JobStatus(str, Enum):
    """Job lifecycle status. Moves forward only."""

    QUEUED = "queued"  # Accepted, encoder not started yet
    RUNNING = "running"  # Encoder process is running
    DONE = "done"  # Encoder exited cleanly, result available (terminal)
    FAILED = "failed"  # Launch failure, non-zero exit or timeout (terminal)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return uuid.uuid4().hex


class Job(BaseModel):
    """
    Tracks the lifecycle of one encode.

    Serialized with camelCase field names (createdAt/updatedAt) because
    the dashboard UI reads these records directly.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    # Identity
    id: str = Field(default_factory=new_job_id)

    # State
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)

    # Outcome (exactly one set in terminal states, neither before)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")

    @model_validator(mode="after")
    def _check_payload(self) -> "Job":
        if self.result is not None and self.status != JobStatus.DONE:
            raise ValueError(f"result is only allowed on done jobs (status={self.status.value})")
        if self.error is not None and self.status != JobStatus.FAILED:
            raise ValueError(f"error is only allowed on failed jobs (status={self.status.value})")
        if self.status == JobStatus.DONE and self.progress != 100:
            raise ValueError(f"done jobs must report progress 100 (got {self.progress})")
        if self.status == JobStatus.DONE and self.result is None:
            raise ValueError("done jobs must carry a result")
        if self.status == JobStatus.FAILED and not self.error:
            raise ValueError("failed jobs must carry an error message")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.DONE, JobStatus.FAILED)

    def to_public_dict(self) -> Dict[str, Any]:
        """JSON-ready dict as exposed over HTTP and the event stream."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
