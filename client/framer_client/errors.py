"""Errors raised by the framer client."""


class FramerClientError(Exception):
    """Base class for all client-side errors."""


class ApiError(FramerClientError):
    """The API answered with an unexpected status."""

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class ApiValidationError(ApiError):
    """400: the request was rejected before any job was created."""


class NotFoundError(ApiError):
    """404: job or artifact unknown, not ready, or expired."""


class RateLimitedError(ApiError):
    """429: too many job-creating requests."""

    def __init__(self, message: str, retry_after_seconds: int = 0, remaining: int = 0):
        super().__init__(message, status_code=429, code="RATE_LIMITED")
        self.retry_after_seconds = retry_after_seconds
        self.remaining = remaining


class JobFailedError(FramerClientError):
    """The job reached ``failed``."""

    def __init__(self, job_id: str, error: str | None):
        super().__init__(error or "Processing failed")
        self.job_id = job_id
        self.error = error


class PollTimeoutError(FramerClientError):
    """The job never reached a terminal state within the polling budget."""

    def __init__(self, job_id: str, attempts: int, elapsed_s: float):
        super().__init__(f"Timed out waiting for job {job_id} after {attempts} polls ({elapsed_s:.0f}s)")
        self.job_id = job_id
        self.attempts = attempts
        self.elapsed_s = elapsed_s


class NoSourceError(FramerClientError):
    """An operation needs a loaded source video and none is loaded."""

    def __init__(self) -> None:
        super().__init__("No video loaded")


class ShareUnsupportedError(FramerClientError):
    """The platform has no native share primitive for files."""


class ShareCancelledError(FramerClientError):
    """Raised by share targets when the user dismisses the share sheet."""
