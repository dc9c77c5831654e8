"""Structured exception hierarchy for the gateway and its cells.

Every error a cell raises on purpose derives from ``CellGatewayError``. The
router lets these pass through untouched so the API layer can map them to a
status code; anything else a handler raises is wrapped in
``InvocationError``.

Key components:
- **ErrorCode enum**: Standardized error identifiers for programmatic handling
- **Severity enum**: Error classification for monitoring and alerting
- **CellGatewayError**: Base exception with context, cause and fingerprint
- **Specialized exceptions**: Validation, lookup, permission, store and
  invocation failures
"""

import hashlib
import traceback
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes shared by all cells."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input validation failed due to invalid or malformed data."""

    NOT_FOUND = "NOT_FOUND"
    """The requested destination, action or resource could not be found."""

    UNAUTHORIZED = "UNAUTHORIZED"
    """The caller is not authenticated."""

    PERMISSION_DENIED = "PERMISSION_DENIED"
    """The caller is authenticated but lacks the required permission."""

    CONFLICT = "CONFLICT"
    """The request collides with existing state."""

    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    """A backing store (database or cache) could not be reached."""

    INVOCATION_ERROR = "INVOCATION_ERROR"
    """A cell handler failed while the router was invoking it."""


class Severity(Enum):
    """Severity levels used for log level selection and alerting."""

    LOW = "LOW"
    """Low severity errors that don't significantly impact functionality."""

    MEDIUM = "MEDIUM"
    """Medium severity errors that may affect some features but not critical ops."""

    HIGH = "HIGH"
    """High severity errors impacting critical functionality or data integrity."""

    CRITICAL = "CRITICAL"
    """Critical errors requiring immediate attention, may cause system failures."""


class CellGatewayError(Exception):
    """Base exception class for all application exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        # Capture stack trace at creation time, excluding this frame
        self.stack_trace = traceback.format_stack()[:-1]
        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Generate a fingerprint for error grouping.

        Returns:
            str: A hash of the error type and the frames that raised it
        """
        max_frames = 5
        relevant_frames = (
            self.stack_trace[-max_frames:]
            if len(self.stack_trace) > max_frames
            else self.stack_trace
        )

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"
        for frame in relevant_frames:
            if "site-packages" not in frame and "cellgate/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """Whether the error is part of normal operation (LOW or MEDIUM)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_alert(self) -> bool:
        """Whether the error should trigger alerts (HIGH or CRITICAL)."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class _CategorizedError(CellGatewayError):
    """Base for errors whose code and severity follow from their type.

    Args:
        message: Human-readable error message
        error_code: Overrides the class's ``default_code``
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_severity: Severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            error_code or self.default_code, message, self.default_severity, context, cause
        )


class ValidationError(_CategorizedError):
    """A payload has the wrong shape or an out-of-range value.

    ``context["fields"]`` lists the offending payload keys when known.
    """

    default_code = ErrorCode.VALIDATION_ERROR
    default_severity = Severity.LOW


class NotFoundError(_CategorizedError):
    """A destination, action or stored resource does not exist."""

    default_code = ErrorCode.NOT_FOUND
    default_severity = Severity.LOW


class UnauthorizedError(_CategorizedError):
    """An operation needs an authenticated caller and has none."""

    default_code = ErrorCode.UNAUTHORIZED
    default_severity = Severity.HIGH


class PermissionDeniedError(_CategorizedError):
    """The caller lacks the permission an action requires.

    ``context`` names the permission that was checked and the action.
    """

    default_code = ErrorCode.PERMISSION_DENIED
    default_severity = Severity.MEDIUM


class ConflictError(_CategorizedError):
    """A create or assign collides with an existing record."""

    default_code = ErrorCode.CONFLICT
    default_severity = Severity.LOW


class BusinessRuleError(_CategorizedError):
    """An operation violates a business rule."""

    default_code = ErrorCode.INTERNAL_ERROR
    default_severity = Severity.MEDIUM


class StoreUnavailableError(_CategorizedError):
    """The database or cache behind a store adapter cannot answer.

    The configuration resolver absorbs this error and degrades to its
    process-wide constants, so it is not expected to reach an HTTP caller.
    """

    default_code = ErrorCode.STORE_UNAVAILABLE
    default_severity = Severity.HIGH


class InvocationError(_CategorizedError):
    """A cell handler failed with an unexpected exception.

    Raised by the router with the destination and action in ``context`` and
    the handler's own exception as ``cause``.
    """

    default_code = ErrorCode.INVOCATION_ERROR
    default_severity = Severity.HIGH
