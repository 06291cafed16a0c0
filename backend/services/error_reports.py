"""Client error reports.

Browsers post uncaught errors, failed requests and custom errors to
``/api/analytics/errors``. A report is validated first, then cut down to what
the visitor's consent level allows before it is stored:

* message and stack are scrubbed of e-mail addresses and URLs, then truncated;
* file names lose their directories;
* ``customData`` loses well-known PII keys at every depth;
* page and device context shrink as consent decreases.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import Field

from app.logging_config import scrub_text
from services.consent import ConsentLevel, is_permitted
from services.event_models import PageContext, UserContext, ValidationResult, WireModel


class ErrorType(str, Enum):
    """Where a reported error came from."""

    JAVASCRIPT_ERROR = "javascript_error"
    NETWORK_ERROR = "network_error"
    RESOURCE_ERROR = "resource_error"
    PROMISE_REJECTION = "promise_rejection"
    CUSTOM_ERROR = "custom_error"
    ANALYTICS_ERROR = "analytics_error"
    PERFORMANCE_ERROR = "performance_error"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


ERROR_TYPE_VALUES = tuple(t.value for t in ErrorType)
SEVERITY_VALUES = tuple(s.value for s in ErrorSeverity)
URGENT_SEVERITIES = frozenset({ErrorSeverity.HIGH.value, ErrorSeverity.CRITICAL.value})

MAX_MESSAGE_LENGTH = 500
MAX_STACK_LENGTH = 2000
MAX_USER_AGENT_LENGTH = 200
MAX_REPORT_AGE_MS = 24 * 60 * 60 * 1000
MAX_CLOCK_SKEW_MS = 60 * 1000

_PII_FIELDS = frozenset({"email", "name", "phone", "address", "password", "token", "api_key"})
_DIRECTORY_RE = re.compile(r"^.*[\\/]")

# Fields of UserContext kept at each consent level; each level adds to the last.
_BASE_USER_FIELDS = (
    "device_type",
    "browser_name",
    "browser_version",
    "platform",
    "timezone",
    "language",
    "is_first_visit",
)
_ANALYTICS_USER_FIELDS = ("viewport_size", "page_views")
_MARKETING_USER_FIELDS = ("screen_resolution", "session_start_time", "previous_visits")


class ErrorReport(WireModel):
    """A sanitized client error, as stored."""

    id: str
    timestamp: int
    type: str
    severity: str
    message: str
    stack: str | None = None
    filename: str | None = None
    line_number: int | None = None
    column_number: int | None = None
    page: PageContext
    user: UserContext = Field(default_factory=UserContext)
    user_agent: str = "hidden"
    custom_data: dict[str, Any] | None = None
    reproducible: bool = True
    resolved: bool = False
    consent_level: str

    @property
    def urgent(self) -> bool:
        return self.severity in URGENT_SEVERITIES


def truncate(text: str, max_length: int) -> str:
    """Cut ``text`` to ``max_length`` characters, ending in ``...`` when cut."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def remove_pii(value: Any) -> Any:
    """Copy of ``value`` without well-known PII keys, recursively."""
    if isinstance(value, Mapping):
        return {k: remove_pii(v) for k, v in value.items() if k not in _PII_FIELDS}
    if isinstance(value, list):
        return [remove_pii(item) for item in value]
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_error_report(data: Any, now_ms: int) -> ValidationResult:
    """Check a raw error report. Every failed check adds one message."""
    if not isinstance(data, Mapping):
        return ValidationResult.from_errors(["Error data must be an object"])

    errors: list[str] = []

    error_type = data.get("type")
    if not _non_empty_str(error_type):
        errors.append("Error type is required and must be a string")
    elif error_type not in ERROR_TYPE_VALUES:
        errors.append(f"Invalid error type. Must be one of: {', '.join(ERROR_TYPE_VALUES)}")

    severity = data.get("severity")
    if not _non_empty_str(severity):
        errors.append("Error severity is required and must be a string")
    elif severity not in SEVERITY_VALUES:
        errors.append(f"Invalid error severity. Must be one of: {', '.join(SEVERITY_VALUES)}")

    if not _non_empty_str(data.get("message")):
        errors.append("Error message is required and must be a non-empty string")

    page = data.get("page")
    if not isinstance(page, Mapping):
        errors.append("Page context is required and must be an object")
    else:
        for field, label in (("path", "path"), ("title", "title"), ("url", "URL")):
            if not _non_empty_str(page.get(field)):
                errors.append(f"Page {label} is required in page context")

    timestamp = data.get("timestamp")
    if timestamp is not None:
        if not _is_number(timestamp) or timestamp <= 0:
            errors.append("Timestamp must be a positive number if provided")
        elif timestamp > now_ms + MAX_CLOCK_SKEW_MS:
            errors.append("Timestamp appears to be in the future")
        elif timestamp < now_ms - MAX_REPORT_AGE_MS:
            errors.append("Error event appears too old")

    for key, label in (("lineNumber", "Line number"), ("columnNumber", "Column number")):
        if data.get(key) is not None and not _is_number(data[key]):
            errors.append(f"{label} must be a number if provided")

    for key, label in (("reproducible", "Reproducible"), ("resolved", "Resolved")):
        if key in data and not isinstance(data[key], bool):
            errors.append(f"{label} must be a boolean if provided")

    return ValidationResult.from_errors(errors)


def _allowed_user_fields(consent_level: str) -> tuple[str, ...]:
    fields = _BASE_USER_FIELDS
    if is_permitted(ConsentLevel.ANALYTICS, consent_level):
        fields += _ANALYTICS_USER_FIELDS
    if is_permitted(ConsentLevel.MARKETING, consent_level):
        fields += _MARKETING_USER_FIELDS
    return fields


def sanitize_error_report(
    data: Mapping[str, Any],
    consent_level: str,
    *,
    report_id: str,
    now_ms: int,
    header_user_agent: str | None = None,
) -> ErrorReport:
    """Build the stored report from a validated raw one.

    Raises pydantic's ``ValidationError`` when a nested context has the
    wrong shape.
    """
    marketing = is_permitted(ConsentLevel.MARKETING, consent_level)

    raw_page = PageContext.model_validate(data["page"])
    page = PageContext(
        path=raw_page.path,
        title=raw_page.title,
        url=raw_page.url.split("?", 1)[0],
        hash=raw_page.hash,
        load_time=raw_page.load_time,
        referrer=raw_page.referrer if marketing else None,
    )

    raw_user = UserContext.model_validate(data.get("user") or {})
    user = UserContext(
        **{field: getattr(raw_user, field) for field in _allowed_user_fields(consent_level)}
    )

    user_agent = "hidden"
    if marketing:
        supplied = data.get("userAgent") or header_user_agent
        if isinstance(supplied, str) and supplied:
            user_agent = supplied[:MAX_USER_AGENT_LENGTH]

    stack = data.get("stack")
    filename = data.get("filename")
    custom_data = data.get("customData")

    return ErrorReport(
        id=data.get("id") or report_id,
        timestamp=data.get("timestamp") or now_ms,
        type=data["type"],
        severity=data["severity"],
        message=truncate(scrub_text(data["message"]), MAX_MESSAGE_LENGTH),
        stack=truncate(scrub_text(stack), MAX_STACK_LENGTH) if isinstance(stack, str) else None,
        filename=_DIRECTORY_RE.sub("", filename) if isinstance(filename, str) else None,
        line_number=data.get("lineNumber"),
        column_number=data.get("columnNumber"),
        page=page,
        user=user,
        user_agent=user_agent,
        custom_data=remove_pii(custom_data) if isinstance(custom_data, Mapping) else None,
        reproducible=data.get("reproducible", True),
        resolved=data.get("resolved", False),
        consent_level=consent_level,
    )
