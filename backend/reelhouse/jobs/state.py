"""
State transition validation for jobs.

Job lifecycle: QUEUED → RUNNING → DONE | FAILED
A job may also go QUEUED → FAILED if it fails before the encoder starts.
No pause, retry, or cancellation transitions exist.

INVARIANT: Terminal job states (DONE, FAILED) are immutable. Once a job
enters a terminal state, no state transition is allowed. A failed job is
resubmitted as a fresh job, never revived.
"""

from typing import FrozenSet, Set, Tuple

from .errors import InvalidStateTransitionError
from .models import JobStatus


TERMINAL_JOB_STATES: FrozenSet[JobStatus] = frozenset({
    JobStatus.DONE,
    JobStatus.FAILED,
})


_JOB_TRANSITIONS: Set[Tuple[JobStatus, JobStatus]] = {
    # Starting the encoder
    (JobStatus.QUEUED, JobStatus.RUNNING),

    # Terminal states
    (JobStatus.RUNNING, JobStatus.DONE),
    (JobStatus.RUNNING, JobStatus.FAILED),
    (JobStatus.QUEUED, JobStatus.FAILED),
}


def is_job_terminal(status: JobStatus) -> bool:
    """
    Check if a job status is terminal (immutable).

    Args:
        status: The job status to check

    Returns:
        True if the status is terminal, False otherwise
    """
    return status in TERMINAL_JOB_STATES


def can_transition_job(from_status: JobStatus, to_status: JobStatus) -> bool:
    """
    Check if a job state transition is legal.

    Staying in the same non-terminal state is allowed (progress updates).
    """
    if is_job_terminal(from_status):
        return False

    if from_status == to_status:
        return True

    return (from_status, to_status) in _JOB_TRANSITIONS


def validate_job_transition(from_status: JobStatus, to_status: JobStatus) -> None:
    """
    Validate a job state transition, raising an exception if illegal.

    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition_job(from_status, to_status):
        raise InvalidStateTransitionError(from_status.value, to_status.value)
