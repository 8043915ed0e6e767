from typing import Optional

from .base import NonRetryableWorkflowError


class PollTimeoutError(NonRetryableWorkflowError):
    """Attempt budget exhausted while the remote run was still running."""

    def __init__(self, message: str, *, attempts: int, run_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.run_id = run_id


class RemoteJobFailedError(NonRetryableWorkflowError):
    """Remote run reached FAILED, TIMED-OUT or ABORTED."""

    def __init__(
        self, message: str, *, status: Optional[str] = None, run_id: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.run_id = run_id


class DatasetFetchError(RemoteJobFailedError):
    """Run succeeded but its dataset could not be read."""

    pass
