class WorkflowError(Exception):
    """Base error that carries retryability information for remote jobs."""

    def __init__(self, message: str, *, retryable: bool) -> None:  # noqa: D401
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class RetryableWorkflowError(WorkflowError):
    """Errors that a caller may retry locally."""

    def __init__(self, message: str) -> None:  # noqa: D401
        super().__init__(message, retryable=True)


class NonRetryableWorkflowError(WorkflowError):
    """Errors that should fail the current job without retry."""

    def __init__(self, message: str) -> None:  # noqa: D401
        super().__init__(message, retryable=False)
