"""Error codes dictionary for the VideoFramer API.

This is the single source of truth for all error codes, their retryability,
and suggested recovery actions. Used by exception handlers to generate
machine-readable error responses.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Validation errors (fix the request, then retry)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
        "suggested_fix": "Check the request body against the API schema",
    },
    "MISSING_FIELD": {
        "retryable": False,
        "suggested_fix": "Provide every required field",
    },
    "UNSUPPORTED_SOURCE": {
        "retryable": False,
        "suggested_fix": "Use a TikTok, Instagram, YouTube, Twitter/X or Facebook video URL",
    },
    "UNSUPPORTED_UPLOAD": {
        "retryable": False,
        "suggested_fix": "Upload a video file no larger than the configured size limit",
    },
    "OVERLAY_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Pick an overlay id from GET /api/overlays",
    },
    "PREREQUISITE_NOT_READY": {
        "retryable": True,
        "suggested_fix": "Wait for the acquisition job to complete before transforming",
    },
    # ==========================================================================
    # Resource errors (fall back to the original artifact)
    # ==========================================================================
    "JOB_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "The job expired or never existed; acquire the video again",
    },
    "ARTIFACT_NOT_FOUND": {
        "retryable": True,
        "suggested_fix": "Poll the job until it completes, or acquire again if it expired",
    },
    # ==========================================================================
    # Throughput errors
    # ==========================================================================
    "RATE_LIMITED": {
        "retryable": True,
        "suggested_fix": "Wait for retryAfterSeconds before creating another job",
    },
    # ==========================================================================
    # Execution errors (recorded on the job)
    # ==========================================================================
    "EXECUTION_FAILED": {"retryable": True},
    "EXTERNAL_TOOL_FAILED": {"retryable": True},
    "EMPTY_OUTPUT": {"retryable": True},
    "PROBE_FAILED": {"retryable": False},
    "INTERNAL_ERROR": {"retryable": True},
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Return the spec for an error code, or an empty spec if unknown."""
    return ERROR_CODES.get(code, {})
