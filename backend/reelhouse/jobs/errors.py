"""
Job-specific error types.

All errors inherit from JobError for easy catching.
Errors are explicit and provide actionable messages.
"""

from typing import List


class JobError(Exception):
    """Base exception for all job-related failures."""
    pass


class InvalidStateTransitionError(JobError):
    """Raised when attempting an illegal state transition."""

    def __init__(self, current_state: str, target_state: str):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid job state transition: {current_state} -> {target_state}"
        )


class JobValidationError(JobError):
    """
    A creation request or job update was rejected before anything changed.

    Carries the enumerated list of problems so the client can show
    each one.
    """

    def __init__(self, message: str, problems: List[str]):
        self.message = message
        self.problems = list(problems)
        super().__init__(f"{message}: {', '.join(self.problems)}")


class MissingInputsError(JobValidationError):
    """One or more referenced input files do not exist in storage."""

    def __init__(self, missing: List[str]):
        super().__init__("Required input files not found", missing)

    @property
    def missing(self) -> List[str]:
        return self.problems


class JobStoreError(JobError):
    """The job database could not be read or written."""
    pass
