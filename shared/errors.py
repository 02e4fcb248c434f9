"""
Shared error handling for the content access layer.
"""

from typing import Dict, Any, Optional


class ContentAccessError(Exception):
    """Base exception for the content access layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a loggable/serializable mapping."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ContentAccessError):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ExternalServiceError(ContentAccessError):
    """External service errors."""

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        self.service = service
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class StorageError(ContentAccessError):
    """Persistent or remote store errors."""

    def __init__(self, store: str, message: str = "Storage error", details: Optional[Dict[str, Any]] = None):
        self.store = store
        super().__init__("STORAGE_ERROR", f"{store}: {message}", details)


class ContentUnavailableError(ContentAccessError):
    """Raised when every source for a piece of content has failed."""

    def __init__(self, message: str = "Content unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONTENT_UNAVAILABLE", message, details)


class RateLimitError(ContentAccessError):
    """Rate limiting errors."""

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None, code: str = "RATE_LIMIT_ERROR"):
        super().__init__(code, message, details)


class RateLimitQueueFullError(RateLimitError):
    """The endpoint queue is at its configured limit."""

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        super().__init__(
            f"Rate limit queue full for endpoint: {endpoint}",
            {"endpoint": endpoint},
            code="RATE_LIMIT_QUEUE_FULL",
        )


class RateLimitQueueClearedError(RateLimitError):
    """A queued request was dropped because its queue was cleared."""

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        super().__init__(
            "Queue cleared",
            {"endpoint": endpoint},
            code="RATE_LIMIT_QUEUE_CLEARED",
        )
