from .base import NonRetryableWorkflowError


class ExtractionError(NonRetryableWorkflowError):
    """No parseable structured payload in a generative-model response."""

    pass


class GenerationError(NonRetryableWorkflowError):
    """The generative-model call itself failed."""

    pass
