from .base import NonRetryableWorkflowError


class ConfigurationError(NonRetryableWorkflowError):
    """A required API token or key is missing."""

    pass


class RecordNotFoundError(NonRetryableWorkflowError):
    """No stored record exists under the requested key."""

    pass
