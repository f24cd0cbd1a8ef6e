"""Custom exceptions for the VideoFramer backend.

Four families map onto the HTTP surface:

- ValidationError (400): bad input, rejected before any job exists
- ResourceNotFoundError (404): unknown or expired job/artifact
- RateLimitExceededError (429): throughput limit, carries retry-after guidance
- ExecutionError: raised inside a running job and recorded as the job's
  ``error``; never returned to the request that created the job
"""

from typing import Any

from videoframer.constants.error_codes import get_error_spec


class FramerError(Exception):
    """Base exception for all VideoFramer application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to the JSON error body."""
        spec = get_error_spec(self.code)
        body: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
            "retryable": spec.get("retryable", False),
        }
        if "suggested_fix" in spec:
            body["suggested_fix"] = spec["suggested_fix"]
        return body


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(FramerError):
    """Base class for validation errors."""

    code = "VALIDATION_ERROR"
    status_code = 400


class MissingFieldError(ValidationError):
    """A required request field is absent or empty."""

    code = "MISSING_FIELD"

    def __init__(self, *fields: str):
        names = " and ".join(fields) if fields else "field"
        super().__init__(f"{names} {'are' if len(fields) > 1 else 'is'} required")


class UnsupportedSourceError(ValidationError):
    """Remote URL is not on the source allow-list."""

    code = "UNSUPPORTED_SOURCE"
    message = "Please provide a valid TikTok, Instagram, YouTube, Twitter, or Facebook video URL"


class UnsupportedUploadError(ValidationError):
    """Uploaded file is not a video or is too large."""

    code = "UNSUPPORTED_UPLOAD"
    message = "Please upload a valid video file"


class OverlayNotFoundError(ValidationError):
    """Overlay id does not resolve to a template."""

    code = "OVERLAY_NOT_FOUND"

    def __init__(self, overlay_id: str):
        self.overlay_id = overlay_id
        super().__init__(f'Frame "{overlay_id}" not found')


class PrerequisiteJobError(ValidationError):
    """Transform requested against an acquisition that is missing or not completed."""

    code = "PREREQUISITE_NOT_READY"

    def __init__(self, job_id: str, reason: str = "is not completed"):
        self.job_id = job_id
        super().__init__(f"Source video {job_id} {reason}")


# =============================================================================
# Resource Not Found Errors (404)
# =============================================================================


class ResourceNotFoundError(FramerError):
    """Base class for resource not found errors."""

    status_code = 404


class JobNotFoundError(ResourceNotFoundError):
    """Job id unknown (never created, or swept after TTL)."""

    code = "JOB_NOT_FOUND"
    message = "Job not found"

    def __init__(self, job_id: str | None = None):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}" if job_id else None)


class ArtifactNotFoundError(ResourceNotFoundError):
    """Artifact not ready yet, or already deleted by the sweeper."""

    code = "ARTIFACT_NOT_FOUND"
    message = "Video not found or still processing"

    def __init__(self, job_id: str | None = None):
        self.job_id = job_id
        super().__init__()


# =============================================================================
# Throughput Errors (429)
# =============================================================================


class RateLimitExceededError(FramerError):
    """Client exceeded the sliding-window request budget."""

    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, retry_after_seconds: int, remaining: int, max_requests: int, window_s: int):
        self.retry_after_seconds = retry_after_seconds
        self.remaining = remaining
        minutes = max(1, -(-retry_after_seconds // 60))
        window_label = "hour" if window_s == 3600 else f"{window_s} seconds"
        super().__init__(
            f"Rate limit reached. You can process {max_requests} videos per {window_label}. "
            f"Try again in {minutes} minute{'' if minutes == 1 else 's'}."
        )

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["retryAfterSeconds"] = self.retry_after_seconds
        body["remaining"] = self.remaining
        return body


# =============================================================================
# Execution Errors (recorded on the job, never raised to the caller)
# =============================================================================


class ExecutionError(FramerError):
    """Failure while a job is running."""

    code = "EXECUTION_FAILED"


class ExternalToolError(ExecutionError):
    """yt-dlp / ffmpeg exited non-zero or could not be started."""

    code = "EXTERNAL_TOOL_FAILED"

    def __init__(self, tool: str, returncode: int | None, stderr: str = ""):
        self.tool = tool
        self.returncode = returncode
        detail = stderr.strip()
        if detail:
            message = detail[-2000:]
        else:
            message = f"{tool} exited with code {returncode}"
        super().__init__(message)


class EmptyOutputError(ExecutionError):
    """External process reported success but produced no bytes."""

    code = "EMPTY_OUTPUT"

    def __init__(self, path: str):
        super().__init__(f"Output file is missing or empty: {path}")


class ProbeError(ExecutionError):
    """ffprobe failed or found no decodable video stream."""

    code = "PROBE_FAILED"


def describe_error(exc: BaseException) -> str:
    """Human-readable cause recorded on a failed job."""
    if isinstance(exc, FramerError):
        return exc.message
    return str(exc) or exc.__class__.__name__
