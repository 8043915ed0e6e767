from .base import RetryableWorkflowError


class TransportError(RetryableWorkflowError):
    """Network-level failure after exhausting the backoff-retry budget."""

    pass
