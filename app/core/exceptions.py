"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. A closed set of error kinds shared by services and the HTTP layer
2. HTTP status code mapping for FastAPI
3. Structured error responses with contextual data
4. No sensitive data leaks in error messages (OWASP A04)

Services raise these internally; the public service boundary converts
them into tagged results (see app.core.result) so callers inspect a
value instead of catching exceptions.
"""

import enum
from typing import Any, Dict, Optional


class ErrorKind(str, enum.Enum):
    """
    Closed enumeration of error kinds returned by service operations.

    WHY: Callers branch on the kind, never on message text.
    """

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_STATE = "INVALID_STATE"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    HAS_DEPENDENCIES = "HAS_DEPENDENCIES"
    INTERNAL = "INTERNAL"


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    kind: ErrorKind = ErrorKind.INTERNAL
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def public_context(self) -> Dict[str, Any]:
        """Context with sensitive keys removed."""
        sensitive_fields = {"password", "token", "secret", "key", "api_key"}
        return {k: v for k, v in self.context.items() if k.lower() not in sensitive_fields}

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        filtered_context = self.public_context()

        return {
            "error": self.__class__.__name__,
            "code": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Authentication & Authorization Exceptions (OWASP A07)
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when the caller cannot be resolved to a known identity.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Authentication failed"


class TokenExpiredError(AuthenticationError):
    """Raised when the identity provider's token has expired."""

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """Raised when a token is malformed or has an invalid signature."""

    default_message = "Token is invalid"


class AuthorizationError(AppException):
    """
    Raised when the resolved identity lacks permission for an action.

    WHY: Distinguishing authorization (403) from authentication (401) helps
    frontends show appropriate messages ("You don't have permission" vs
    "Please log in").

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    kind = ErrorKind.FORBIDDEN
    default_message = "You do not have permission to perform this action"


# ============================================================================
# Validation & Input Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    WHY: Malformed amounts, colors, emails, mismatched tags and rejected
    uploads all return 400 with details about what failed.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    kind = ErrorKind.INVALID_INPUT
    default_message = "Validation failed"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a referenced order, profile, tag, document or user doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


class ResourceAlreadyExistsError(AppException):
    """
    Raised when attempting to create a resource that already exists.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    kind = ErrorKind.ALREADY_EXISTS
    default_message = "Resource already exists"


class HasDependenciesError(AppException):
    """
    Raised when a deletion is blocked by dependent records.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    kind = ErrorKind.HAS_DEPENDENCIES
    default_message = "Resource has dependent records"


# ============================================================================
# Business Rule Exceptions
# ============================================================================


class InvalidStateTransitionError(AppException):
    """
    Raised when an action is not permitted from the order's current status.

    WHY: Also surfaced when a concurrent write won the race and the
    re-validated action no longer applies.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    kind = ErrorKind.INVALID_STATE
    default_message = "Invalid state transition"


class LimitExceededError(AppException):
    """
    Raised when a usage or list-size cap would be exceeded.

    HTTP Status: 429 Too Many Requests
    """

    status_code = 429
    kind = ErrorKind.LIMIT_EXCEEDED
    default_message = "Limit exceeded"


class HistoryImmutableError(AuthorizationError):
    """
    Raised on any attempt to modify or delete a history entry.

    WHY: The order timeline is append-only; corrections are new entries.
    """

    default_message = "History entries cannot be modified or deleted"


# ============================================================================
# External Service Exceptions
# ============================================================================


class ExternalServiceError(AppException):
    """
    Raised when a collaborator (storage, webhook) fails.

    These are logged by the caller and never fail the triggering operation.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class StorageError(ExternalServiceError):
    """Raised when the object store rejects a deletion."""

    default_message = "Document storage operation failed"


class NotificationDeliveryError(ExternalServiceError):
    """Raised when a notification consumer fails to deliver an event."""

    default_message = "Notification delivery failed"


EXCEPTION_BY_KIND: Dict[ErrorKind, type] = {
    ErrorKind.UNAUTHORIZED: AuthenticationError,
    ErrorKind.FORBIDDEN: AuthorizationError,
    ErrorKind.NOT_FOUND: ResourceNotFoundError,
    ErrorKind.INVALID_INPUT: ValidationError,
    ErrorKind.INVALID_STATE: InvalidStateTransitionError,
    ErrorKind.ALREADY_EXISTS: ResourceAlreadyExistsError,
    ErrorKind.LIMIT_EXCEEDED: LimitExceededError,
    ErrorKind.HAS_DEPENDENCIES: HasDependenciesError,
    ErrorKind.INTERNAL: AppException,
}
