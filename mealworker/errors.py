"""Worker exception types.

Abort-this-job errors (``UnknownJobTypeError``, ``InvalidPlanError``,
``PersistenceError``) end up as the failure message reported to the job queue.
"""


class WorkerError(Exception):
    """Base class for errors raised by the worker."""


class ConfigurationError(WorkerError):
    """Required configuration or credentials are missing."""


class UnknownJobTypeError(WorkerError):
    """The claimed job has a type no handler is registered for."""

    def __init__(self, job_type: str):
        super().__init__(f"Unknown job type: {job_type}")
        self.job_type = job_type


class StructuredOutputError(WorkerError):
    """The LLM response could not be parsed as JSON."""


class InvalidPlanError(WorkerError):
    """The generated meal plan document is unusable."""


class PersistenceError(WorkerError):
    """The generated meal plan could not be saved."""


class InvalidPayloadError(WorkerError):
    """The job payload is missing required fields or has the wrong shape."""
