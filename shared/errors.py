"""Error taxonomy for the ingestion and retrieval pipeline.

Every error raised by a client or pipeline component derives from
PipelineError so callers can separate pipeline failures from programming
errors. The retry helper decides retryability from the concrete class:
PermanentValidationError and ProviderAuthError are never retried.
"""

from typing import Any


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Args:
            message (str): Short, user-presentable error message.
            details (dict[str, Any] | None): Additional context for logging.
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class PermanentValidationError(PipelineError):
    """Raised for input that can never succeed (oversized file, bad request)."""


class TransientNetworkError(PipelineError):
    """Raised for timeouts, connection resets and remote 5xx responses."""


class ProviderRateLimitError(PipelineError):
    """Raised when a remote provider rejects a request with HTTP 429."""


class ProviderAuthError(PipelineError):
    """Raised when a remote provider rejects the credentials (HTTP 401/403)."""


class VectorStoreUnavailableError(PipelineError):
    """Raised when the vector store cannot be reached or refuses a write."""


class ResponseShapeError(PipelineError):
    """Raised when a model response does not have the expected shape.

    Attributes:
        reason (str): Machine-readable sub-case, e.g. "refused", "truncated",
            "content_filter", "empty_content".
    """

    def __init__(self, message: str, reason: str, details: dict[str, Any] | None = None) -> None:
        details = dict(details or {})
        details["reason"] = reason
        self.reason = reason
        super().__init__(message, details)


class UploadSessionNotFoundError(PipelineError):
    """Raised when an upload operation references an unknown file id."""


class UploadSessionStateError(PipelineError):
    """Raised when an upload operation is not valid in the session's current state."""


class FileTooLargeError(PermanentValidationError):
    """Raised when an upload exceeds the configured size ceiling."""
