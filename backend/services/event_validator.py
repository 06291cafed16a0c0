"""Analytics event validation.

Validation is a reportable outcome, never an exception: every check runs and
each violation adds one human-readable message to the result.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from services.consent import CONSENT_LEVEL_VALUES, is_permitted, required_consent_for
from services.event_models import EVENT_CATEGORY_VALUES, AnalyticsEvent, ValidationResult


def _field(event: AnalyticsEvent | Mapping[str, Any], name: str, alias: str) -> Any:
    if isinstance(event, Mapping):
        if name in event:
            return event[name]
        return event.get(alias)
    return getattr(event, name, None)


def _is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and len(value) > 0


def _is_positive_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value > 0


def validate_event(event: AnalyticsEvent | Mapping[str, Any]) -> ValidationResult:
    """Check required fields, enum membership and formats of an event.

    Accepts a constructed ``AnalyticsEvent`` or a raw decoded JSON mapping
    (snake_case or camelCase keys).
    """
    errors: list[str] = []

    if not _is_non_empty_str(_field(event, "id", "id")):
        errors.append("Event ID is required and must be a non-empty string")

    if not _is_positive_number(_field(event, "timestamp", "timestamp")):
        errors.append("Timestamp is required and must be a positive number")

    if not _is_non_empty_str(_field(event, "session_id", "sessionId")):
        errors.append("Session ID is required and must be a non-empty string")

    category = _field(event, "category", "category")
    if not isinstance(category, str) or category not in EVENT_CATEGORY_VALUES:
        errors.append(f"Invalid event category: {category}")

    if not _is_non_empty_str(_field(event, "action", "action")):
        errors.append("Action is required and must be a non-empty string")

    page = _field(event, "page", "page")
    path = _field(page, "path", "path") if page is not None else None
    if not _is_non_empty_str(path):
        errors.append("Page path is required and must be a non-empty string")

    consent_level = _field(event, "consent_level", "consentLevel")
    if not isinstance(consent_level, str) or consent_level not in CONSENT_LEVEL_VALUES:
        errors.append(f"Invalid consent level: {consent_level}")

    return ValidationResult.from_errors(errors)


def check_event_consent(event: AnalyticsEvent) -> ValidationResult:
    """Report when the event's consent level is below its category's minimum."""
    required = required_consent_for(event.category)
    if is_permitted(required, event.consent_level):
        return ValidationResult(valid=True)
    return ValidationResult.from_errors(
        [
            f"Insufficient consent level. Required: {required.value}, "
            f"Provided: {event.consent_level}"
        ]
    )
