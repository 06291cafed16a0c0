"""Tests for event validation."""

import pytest

from services.consent import ConsentLevel
from services.event_models import AnalyticsEvent, EventCategory, PageContext
from services.event_validator import check_event_consent, validate_event


def _valid_payload(**overrides):
    payload = {
        "id": "evt-1",
        "timestamp": 1_700_000_000_000,
        "sessionId": "sess-1",
        "category": "project_click",
        "action": "click",
        "page": {"path": "/projects", "title": "Projects", "url": "https://example.com/projects"},
        "consentLevel": "analytics",
    }
    payload.update(overrides)
    return payload


class TestValidateEvent:
    """validate_event runs every check and reports each violation."""

    def test_valid_mapping(self):
        result = validate_event(_valid_payload())
        assert result.valid is True
        assert result.errors == []

    def test_valid_model(self):
        event = AnalyticsEvent.model_validate(_valid_payload())
        assert validate_event(event).valid is True

    def test_snake_case_mapping(self):
        payload = _valid_payload()
        payload["session_id"] = payload.pop("sessionId")
        payload["consent_level"] = payload.pop("consentLevel")
        assert validate_event(payload).valid is True

    @pytest.mark.parametrize(
        "field,bad_value,message",
        [
            ("id", "", "Event ID is required and must be a non-empty string"),
            ("timestamp", 0, "Timestamp is required and must be a positive number"),
            ("timestamp", -5, "Timestamp is required and must be a positive number"),
            ("timestamp", "1700000000000", "Timestamp is required and must be a positive number"),
            ("sessionId", "", "Session ID is required and must be a non-empty string"),
            ("action", "", "Action is required and must be a non-empty string"),
            ("category", "invalid_category", "Invalid event category: invalid_category"),
            ("consentLevel", "maximum", "Invalid consent level: maximum"),
        ],
    )
    def test_single_violation(self, field, bad_value, message):
        result = validate_event(_valid_payload(**{field: bad_value}))
        assert result.valid is False
        assert result.errors == [message]

    def test_boolean_timestamp_rejected(self):
        result = validate_event(_valid_payload(timestamp=True))
        assert result.errors == ["Timestamp is required and must be a positive number"]

    def test_missing_page_path(self):
        result = validate_event(_valid_payload(page={"title": "No path"}))
        assert result.errors == ["Page path is required and must be a non-empty string"]

    def test_missing_page(self):
        payload = _valid_payload()
        del payload["page"]
        result = validate_event(payload)
        assert result.errors == ["Page path is required and must be a non-empty string"]

    def test_all_checks_run_in_order(self):
        result = validate_event({})
        assert result.errors == [
            "Event ID is required and must be a non-empty string",
            "Timestamp is required and must be a positive number",
            "Session ID is required and must be a non-empty string",
            "Invalid event category: None",
            "Action is required and must be a non-empty string",
            "Page path is required and must be a non-empty string",
            "Invalid consent level: None",
        ]

    def test_unhashable_category_reported(self):
        result = validate_event(_valid_payload(category=["page_view"]))
        assert result.errors == ["Invalid event category: ['page_view']"]

    def test_default_model_is_invalid(self):
        assert validate_event(AnalyticsEvent()).valid is False


class TestCheckEventConsent:
    def _event(self, category, level):
        return AnalyticsEvent(
            id="e",
            timestamp=1,
            session_id="s",
            category=category.value,
            action="a",
            page=PageContext(path="/"),
            consent_level=level.value,
        )

    def test_page_view_needs_only_essential(self):
        result = check_event_consent(self._event(EventCategory.PAGE_VIEW, ConsentLevel.ESSENTIAL))
        assert result.valid is True

    def test_project_click_needs_analytics(self):
        result = check_event_consent(
            self._event(EventCategory.PROJECT_CLICK, ConsentLevel.FUNCTIONAL)
        )
        assert result.valid is False
        assert result.errors == [
            "Insufficient consent level. Required: analytics, Provided: functional"
        ]

    def test_newsletter_needs_marketing(self):
        event = self._event(EventCategory.NEWSLETTER_SIGNUP, ConsentLevel.ANALYTICS)
        assert check_event_consent(event).valid is False
        event = self._event(EventCategory.NEWSLETTER_SIGNUP, ConsentLevel.FULL)
        assert check_event_consent(event).valid is True
