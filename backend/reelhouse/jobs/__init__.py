"""
Job tracking: records, lifecycle rules, storage and orchestration.

Job lifecycle: QUEUED → RUNNING → DONE | FAILED
"""

from .errors import (
    JobError,
    JobStoreError,
    JobValidationError,
    InvalidStateTransitionError,
    MissingInputsError,
)
from .models import Job, JobStatus
from .state import (
    TERMINAL_JOB_STATES,
    can_transition_job,
    is_job_terminal,
    validate_job_transition,
)
from .store import JobStore
from .service import VideoJobService

__all__ = [
    # Errors
    "JobError",
    "JobStoreError",
    "JobValidationError",
    "InvalidStateTransitionError",
    "MissingInputsError",
    # Models
    "Job",
    "JobStatus",
    # State validation
    "TERMINAL_JOB_STATES",
    "can_transition_job",
    "is_job_terminal",
    "validate_job_transition",
    # Store
    "JobStore",
    # Orchestration
    "VideoJobService",
]
