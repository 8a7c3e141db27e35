"""
Custom exceptions for the sync engine with structured error context.

Every exception carries a context dictionary so failures can be logged
and persisted to the control-state store without losing detail.

Exception Hierarchy:
    SyncException (base)
    ├── FetchError
    │   ├── NetworkError
    │   ├── UpstreamStatusError
    │   └── MalformedRecordError
    ├── TransformationError
    │   └── UnknownEntityKindError
    ├── LoadError
    │   └── UpsertError
    ├── ControlStateError
    ├── DiscoveryError
    └── SyncRunError
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class SyncException(Exception):
    """
    Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (url, key, status, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(SyncException):
    """Base exception for upstream fetch failures."""
    pass


class NetworkError(FetchError):
    """
    Transport-level failure (connection refused, timeout, reset).

    Context should include:
        - url: The URL that failed
    """
    pass


class UpstreamStatusError(FetchError):
    """
    Upstream answered with a non-success status.

    Context should include:
        - url: The URL that failed
        - status_code: HTTP status code
        - response_body: Response body (truncated)
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        self.context["status_code"] = status_code


class MalformedRecordError(FetchError):
    """
    Upstream answered 2xx but the body is unusable.

    Raised for unparseable JSON, a feed page that is not an array,
    or a record envelope missing its own key.
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(SyncException):
    """Base exception for record normalization failures."""
    pass


class UnknownEntityKindError(TransformationError):
    """
    Raised when a key matches no known namespace (author/work/edition).

    Context should include:
        - key: The offending key
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(SyncException):
    """Base exception for record store failures."""
    pass


class UpsertError(LoadError):
    """
    Exception raised when an upsert fails.

    Context should include:
        - key: Key of the record being upserted
        - table_name: Target table
    """
    pass


# ============================================================================
# Control State / Run Errors
# ============================================================================

class ControlStateError(SyncException):
    """Raised when the control-state store holds an unusable value."""
    pass


class DiscoveryError(SyncException):
    """
    Fatal discovery failure: a feed page exhausted its retries.

    Context should include:
        - url: The page URL
        - status: HTTP status code or None for transport errors
        - retry_count: Number of attempts made
    """
    pass


class SyncRunError(SyncException):
    """Raised by the orchestrator when a run ends in the failed state."""
    pass
