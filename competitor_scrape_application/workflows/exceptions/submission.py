from typing import Optional

from .base import NonRetryableWorkflowError


class SubmissionError(NonRetryableWorkflowError):
    """The remote service refused to start a run."""

    def __init__(self, message: str, *, status_text: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_text = status_text
