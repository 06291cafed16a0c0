"""Analytics event data model.

Events and their embedded page/user contexts are immutable pydantic models.
On the wire they use camelCase keys (``sessionId``, ``consentLevel``);
either spelling is accepted on input.

``category`` and ``consent_level`` are kept as plain strings so an event
carrying an unknown value can still be built and then reported by
``services.event_validator.validate_event``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel


class EventCategory(str, Enum):
    """Kinds of visitor or system actions recorded."""

    # Page navigation
    PAGE_VIEW = "page_view"
    PAGE_SCROLL = "page_scroll"
    PAGE_EXIT = "page_exit"

    # Portfolio interactions
    PROJECT_VIEW = "project_view"
    PROJECT_CLICK = "project_click"
    PROJECT_FILTER = "project_filter"
    TECH_STACK_CLICK = "tech_stack_click"

    # Newsletter & contact
    NEWSLETTER_SIGNUP = "newsletter_signup"
    NEWSLETTER_SUCCESS = "newsletter_success"
    NEWSLETTER_ERROR = "newsletter_error"
    CONTACT_FORM_VIEW = "contact_form_view"
    CONTACT_FORM_SUBMIT = "contact_form_submit"

    # Navigation & links
    NAVIGATION_CLICK = "navigation_click"
    EXTERNAL_LINK_CLICK = "external_link_click"
    SOCIAL_LINK_CLICK = "social_link_click"

    # Performance & errors
    PERFORMANCE_METRIC = "performance_metric"
    ERROR_OCCURRED = "error_occurred"
    SLOW_LOADING = "slow_loading"

    # Engagement
    TIME_ON_PAGE = "time_on_page"
    SCROLL_DEPTH = "scroll_depth"
    CTA_INTERACTION = "cta_interaction"


EVENT_CATEGORY_VALUES = frozenset(c.value for c in EventCategory)


class DeviceType(str, Enum):
    """Device classes used for segmentation."""

    DESKTOP = "desktop"
    TABLET = "tablet"
    MOBILE = "mobile"
    UNKNOWN = "unknown"


class WireModel(BaseModel):
    """Immutable model serialized with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_wire(self) -> dict:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PageContext(WireModel):
    """Snapshot of the page an event happened on."""

    path: str = ""
    title: str = ""
    url: str = ""
    referrer: str | None = None
    query_params: dict[str, str] | None = None
    hash: str | None = None
    load_time: float | None = None


class UserContext(WireModel):
    """Snapshot of the visitor's device and session counters."""

    device_type: DeviceType = DeviceType.UNKNOWN
    screen_resolution: str = "unknown"
    viewport_size: str = "unknown"
    user_agent: str = "unknown"
    browser_name: str = "unknown"
    browser_version: str = "unknown"
    platform: str = "unknown"
    country: str | None = None
    region: str | None = None
    timezone: str = "UTC"
    language: str = "en"
    is_first_visit: bool = True
    session_start_time: int = 0
    page_views: int = 1
    previous_visits: int | None = None


class AnalyticsEvent(WireModel):
    """One recorded visitor or system action. Never mutated after creation."""

    id: str = ""
    timestamp: int = 0
    session_id: str = ""
    user_id: str | None = None
    category: str = ""
    action: str = ""
    label: str | None = None
    value: float | None = None
    page: PageContext = Field(default_factory=PageContext)
    user: UserContext = Field(default_factory=UserContext)
    consent_level: str = ""
    anonymized: bool = True

    def stripped(self) -> AnalyticsEvent:
        """Copy without visitor-identifying context when ``anonymized`` is set.

        Drops ``user_id``, reduces the user agent to ``"unknown"`` and clears
        the coarse location. Device class, browser family and counters stay.
        """
        if not self.anonymized:
            return self
        user = self.user.model_copy(
            update={"user_agent": "unknown", "country": None, "region": None}
        )
        return self.model_copy(update={"user_id": None, "user": user})


class EventBatch(WireModel):
    """Batch envelope: ``{"events": [...]}``."""

    events: list[Any]


class ValidationResult(BaseModel):
    """Outcome of a validation pass. ``valid`` iff ``errors`` is empty."""

    valid: bool
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> ValidationResult:
        return cls(valid=not errors, errors=list(errors))

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError) -> ValidationResult:
        """One ``"loc: msg"`` line per pydantic error."""
        return cls.from_errors(
            [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ]
        )
