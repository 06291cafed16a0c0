"""Custom exception classes for Portfolio Analytics.

All HTTP-facing exceptions render as:
{
    "error": {
        "code": "ERROR_CODE",
        "message": "Human-readable message",
        "details": {}  # optional
    }
}

Validation failures of events and consent records are NOT exceptions; they
are returned as ValidationResult values. These classes cover request-level
faults only. Messages must never echo client identifiers.
"""

from __future__ import annotations

from typing import Any


class AnalyticsBaseError(Exception):
    """Base exception for Portfolio Analytics."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result


class InvalidContentTypeError(AnalyticsBaseError):
    """Request body is not declared as JSON."""

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_CONTENT_TYPE",
            message="Content-Type must be application/json",
            status_code=400,
        )


class InvalidJSONError(AnalyticsBaseError):
    """Request body could not be parsed as JSON."""

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_JSON",
            message="Invalid JSON in request body",
            status_code=400,
        )


class InvalidEventError(AnalyticsBaseError):
    """Event payload failed validation."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__(
            code="INVALID_EVENT_DATA",
            message=f"Event validation failed: {', '.join(errors)}",
            status_code=400,
            details={"errors": errors},
        )


class InsufficientConsentError(AnalyticsBaseError):
    """Consent level too low for the requested tracking."""

    def __init__(self, required: str, provided: str) -> None:
        super().__init__(
            code="INSUFFICIENT_CONSENT",
            message="Insufficient consent level for analytics tracking",
            status_code=403,
            details={"required_consent": required, "provided_consent": provided},
        )


class BatchError(AnalyticsBaseError):
    """Batch envelope is empty, malformed or too large."""

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=400,
            details=details,
        )


class InvalidConsentError(AnalyticsBaseError):
    """Consent payload or resulting record is invalid."""

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=400,
            details=details,
        )


class ConsentNotFoundError(AnalyticsBaseError):
    """No consent record for the given id."""

    def __init__(self) -> None:
        super().__init__(
            code="CONSENT_NOT_FOUND",
            message="Consent record not found",
            status_code=404,
        )


class EventConstructionError(AnalyticsBaseError):
    """Event could not be built (random or clock source unavailable)."""

    def __init__(self, message: str = "Failed to construct analytics event") -> None:
        super().__init__(
            code="EVENT_CONSTRUCTION_FAILED",
            message=message,
            status_code=500,
        )


class UnauthorizedError(AnalyticsBaseError):
    """Missing or invalid credentials."""

    def __init__(self) -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message="Unauthorized access",
            status_code=401,
        )


class ForbiddenError(AnalyticsBaseError):
    """Valid credentials without the required role."""

    def __init__(self) -> None:
        super().__init__(
            code="INSUFFICIENT_PERMISSIONS",
            message="Forbidden - admin access required",
            status_code=403,
        )


class RateLimitError(AnalyticsBaseError):
    """Application rate limit exceeded."""

    def __init__(self, limit_type: str, retry_after: int = 60) -> None:
        super().__init__(
            code="RATE_LIMIT_EXCEEDED",
            message=f"Rate limit exceeded for {limit_type}. Try again later.",
            status_code=429,
            details={"retry_after_seconds": retry_after, "limit_type": limit_type},
        )


class EventStorageError(AnalyticsBaseError):
    """Event passed validation but could not be written."""

    def __init__(self) -> None:
        super().__init__(
            code="EVENT_STORAGE_FAILED",
            message="Event could not be stored. Try again later.",
            status_code=503,
        )


class MonitoringConsentError(AnalyticsBaseError):
    """Error or performance report sent without enough consent."""

    def __init__(self, code: str, message: str, consent_level: str) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=403,
            details={"required_consent": "analytics", "provided_consent": consent_level},
        )


class ReportValidationError(AnalyticsBaseError):
    """Error or performance report failed validation."""

    def __init__(self, errors: list[str], status_code: int = 400) -> None:
        super().__init__(
            code="VALIDATION_FAILED",
            message="Invalid report data",
            status_code=status_code,
            details={"errors": errors},
        )
