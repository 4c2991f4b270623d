"""
Session Lifecycle Exception Classes

This module provides the exception hierarchy for session persistence and lifecycle
management. Every exception carries a standardized error code, optional structured
details and a creation timestamp so it can be logged, serialized for HTTP responses
and correlated with backend failures.

Error taxonomy:
- NotFoundError: identifier absent in the store, recoverable ("not authenticated")
- EncodeError / UnsupportedTypeError: record cannot be serialized
- DecodeError: stored payload is corrupt or of an unknown format
- StoreIOError / StoreTimeoutError: transient backend failure, may be retried
- RotationFailedError: identifier rotation lost the session between delete and save
- SessionInvalidError: operation refused on a session that is already invalid
- DuplicateNamespaceError: a lifecycle manager namespace is already registered
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class SessionErrorCode(Enum):
    """Standardized error codes for session failures."""

    SESSION_ERROR = "SESSION_1000"
    SESSION_NOT_FOUND = "SESSION_1001"
    SESSION_ENCODE_FAILED = "SESSION_1002"
    SESSION_UNSUPPORTED_TYPE = "SESSION_1003"
    SESSION_DECODE_FAILED = "SESSION_1004"
    SESSION_INVALID = "SESSION_1005"
    STORE_IO_ERROR = "STORE_2001"
    STORE_TIMEOUT = "STORE_2002"
    STORE_ROTATION_FAILED = "STORE_2003"
    NAMESPACE_DUPLICATE = "NAMESPACE_3001"


class SessionError(Exception):
    """
    Base exception class for all session-related errors.

    Attributes:
        message: Human-readable error description
        error_code: Standardized error code for monitoring and alerting
        details: Additional error context for debugging
        timestamp: Error occurrence timestamp for correlation with logs
    """

    default_code = SessionErrorCode.SESSION_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[SessionErrorCode] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON serialization in error responses.

        Returns:
            Dictionary containing error information suitable for HTTP responses
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


class NotFoundError(SessionError):
    """Raised when a session identifier is absent from the store."""

    default_code = SessionErrorCode.SESSION_NOT_FOUND

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message, details={"session_id_present": session_id is not None})
        self.session_id = session_id


class EncodeError(SessionError):
    """Raised when a session record cannot be serialized."""

    default_code = SessionErrorCode.SESSION_ENCODE_FAILED


class UnsupportedTypeError(EncodeError):
    """
    Raised when session data contains a value outside the supported variant.

    Supported values are str, int, float, bool, bytes and nested maps with
    string keys holding supported values.

    Attributes:
        value_type: Name of the offending Python type
        path: Dotted path of the offending entry inside the data map
    """

    default_code = SessionErrorCode.SESSION_UNSUPPORTED_TYPE

    def __init__(self, message: str, value_type: str, path: str = ""):
        super().__init__(message, details={"value_type": value_type, "path": path})
        self.value_type = value_type
        self.path = path


class DecodeError(SessionError):
    """Raised when a stored payload cannot be decoded into a session record."""

    default_code = SessionErrorCode.SESSION_DECODE_FAILED

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            message,
            details={
                "original_error_type": type(original_error).__name__ if original_error else None
            }
        )
        self.original_error = original_error


class StoreIOError(SessionError):
    """
    Raised when a store backend operation fails.

    Attributes:
        operation: Backend operation that failed (get, put, delete, rename, ids)
        backend: Backend name
        original_error: Underlying exception raised by the backend client
    """

    default_code = SessionErrorCode.STORE_IO_ERROR

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        backend: str = "unknown",
        original_error: Optional[Exception] = None,
        error_code: Optional[SessionErrorCode] = None
    ):
        super().__init__(
            message,
            error_code=error_code,
            details={
                "operation": operation,
                "backend": backend,
                "original_error_type": type(original_error).__name__ if original_error else None,
                "original_error_message": str(original_error) if original_error else None
            }
        )
        self.operation = operation
        self.backend = backend
        self.original_error = original_error


class StoreTimeoutError(StoreIOError):
    """Raised when a backend operation exceeds its configured timeout."""

    default_code = SessionErrorCode.STORE_TIMEOUT


class RotationFailedError(StoreIOError):
    """
    Raised when a non-atomic identifier rotation deleted the old record but
    could not save the rotated one. The session is lost and the caller must
    force re-authentication.
    """

    default_code = SessionErrorCode.STORE_ROTATION_FAILED

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message, operation="update", original_error=original_error)


class SessionInvalidError(SessionError):
    """Raised when an operation requires a valid session but got an invalid one."""

    default_code = SessionErrorCode.SESSION_INVALID


class DuplicateNamespaceError(SessionError):
    """Raised when a lifecycle manager namespace is already registered."""

    default_code = SessionErrorCode.NAMESPACE_DUPLICATE

    def __init__(self, namespace: str):
        super().__init__(
            f"Session namespace '{namespace}' already exists",
            details={"namespace": namespace}
        )
        self.namespace = namespace


# HTTP status code mappings for transport integrations
HTTP_STATUS_CODES = {
    SessionErrorCode.SESSION_ERROR: 500,
    SessionErrorCode.SESSION_NOT_FOUND: 401,
    SessionErrorCode.SESSION_ENCODE_FAILED: 500,
    SessionErrorCode.SESSION_UNSUPPORTED_TYPE: 500,
    SessionErrorCode.SESSION_DECODE_FAILED: 500,
    SessionErrorCode.SESSION_INVALID: 401,
    SessionErrorCode.STORE_IO_ERROR: 503,
    SessionErrorCode.STORE_TIMEOUT: 504,
    SessionErrorCode.STORE_ROTATION_FAILED: 401,
    SessionErrorCode.NAMESPACE_DUPLICATE: 500,
}


__all__ = [
    "SessionErrorCode",
    "SessionError",
    "NotFoundError",
    "EncodeError",
    "UnsupportedTypeError",
    "DecodeError",
    "StoreIOError",
    "StoreTimeoutError",
    "RotationFailedError",
    "SessionInvalidError",
    "DuplicateNamespaceError",
    "HTTP_STATUS_CODES",
]
