"""
Domain exceptions for Guildhall.

Purpose
-------
Define the structured, domain-specific exception hierarchy for community
logic. Services raise these for missing entities, authorization failures,
state conflicts, expiry and malformed input. The transport layer maps each
class to a response code through `status_hint`.

Design Notes
------------
- All domain exceptions inherit from `CommunityDomainException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried (never, for these:
    the caller re-reads state instead)
  - `error_code`: short, stable identifier for programmatic use
  - `status_hint`: suggested transport status (404/403/409/410/422)
- Every exception raised inside `DatabaseService.get_transaction()` rolls the
  whole transaction back, so a raised domain error never leaves partial state.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from src.core.exceptions import ErrorSeverity


class CommunityDomainException(Exception):
    """
    Base exception for all community domain errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.INFO
    DEFAULT_RETRYABLE: bool = False
    STATUS_HINT: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    @property
    def status_hint(self) -> int:
        return self.STATUS_HINT

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
            "status_hint": self.status_hint,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}"
            ")"
        )


class NotFoundError(CommunityDomainException):
    """
    Raised when a referenced entity does not exist.

    Args:
        resource_type: Type of resource (e.g., "Guild", "Invitation")
        identifier: Optional identifier for the missing resource
    """

    STATUS_HINT = 404

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{_code(resource_type)}_NOT_FOUND",
        )


class ForbiddenError(CommunityDomainException):
    """
    Raised when the actor lacks the role or ownership an action requires,
    or the resource is locked against them.

    Args:
        action: The action that was attempted
        reason: Why it is not permitted
    """

    STATUS_HINT = 403

    def __init__(self, action: str, reason: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Not permitted to {action}: {reason}",
            details={"action": action, "reason": reason, **(details or {})},
            error_code="FORBIDDEN",
        )


class ConflictError(CommunityDomainException):
    """
    Raised when the current state rejects the operation: duplicate pending
    invitation/request, member cap reached, existing membership, or a lost
    compare-and-set race.

    Args:
        resource_type: The resource in conflict
        reason: What conflicted
    """

    STATUS_HINT = 409

    def __init__(self, resource_type: str, reason: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.resource_type = resource_type
        self.reason = reason
        super().__init__(
            f"{resource_type} conflict: {reason}",
            details={"resource_type": resource_type, "reason": reason, **(details or {})},
            error_code=f"{_code(resource_type)}_CONFLICT",
        )


class GoneError(CommunityDomainException):
    """
    Raised when an invitation or join request has expired.

    Args:
        resource_type: Type of resource
        identifier: The expired resource id
        reason: Why it is no longer actionable
    """

    STATUS_HINT = 410

    def __init__(self, resource_type: str, identifier: Any, reason: str = "expired") -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        self.reason = reason
        super().__init__(
            f"{resource_type} {identifier} is no longer available: {reason}",
            details={"resource_type": resource_type, "identifier": identifier, "reason": reason},
            error_code=f"{_code(resource_type)}_GONE",
        )


class ValidationError(CommunityDomainException):
    """
    Raised when input fails validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    STATUS_HINT = 422

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code="VALIDATION_ERROR",
        )


def _code(resource_type: str) -> str:
    return resource_type.upper().replace(" ", "_")


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, CommunityDomainException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True if severity is ERROR or CRITICAL."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
