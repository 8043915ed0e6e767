from .base import WorkflowError, RetryableWorkflowError, NonRetryableWorkflowError
from .configuration import ConfigurationError, RecordNotFoundError
from .extraction import ExtractionError, GenerationError
from .polling import DatasetFetchError, PollTimeoutError, RemoteJobFailedError
from .submission import SubmissionError
from .transport import TransportError

__all__ = [
    "WorkflowError",
    "RetryableWorkflowError",
    "NonRetryableWorkflowError",
    "ConfigurationError",
    "RecordNotFoundError",
    "ExtractionError",
    "GenerationError",
    "DatasetFetchError",
    "PollTimeoutError",
    "RemoteJobFailedError",
    "SubmissionError",
    "TransportError",
]
