"""Privacy consent model.

Maps a visitor's consent level onto granular permissions and answers the
two questions every tracking call asks: may this proceed, and must the
resulting event be anonymized.

Consent records are immutable. Every preference change or withdrawal yields
a new timestamped record so the full history can be audited.

All functions here are pure; storage lives in ``services.consent_store``.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from services.event_models import EventCategory, ValidationResult


class ConsentLevel(str, Enum):
    """Overall consent scope, ordered from least to most permissive."""

    NONE = "none"
    ESSENTIAL = "essential"
    FUNCTIONAL = "functional"
    ANALYTICS = "analytics"
    MARKETING = "marketing"
    FULL = "full"


class ConsentMethod(str, Enum):
    """How a consent record was captured."""

    BANNER_ACCEPT = "banner_accept"
    BANNER_REJECT = "banner_reject"
    SETTINGS_UPDATE = "settings_update"
    AUTO_ESSENTIAL = "auto_essential"
    GDPR_REQUEST = "gdpr_request"


CONSENT_HIERARCHY: tuple[ConsentLevel, ...] = tuple(ConsentLevel)
CONSENT_LEVEL_VALUES = frozenset(level.value for level in ConsentLevel)
CONSENT_METHOD_VALUES = frozenset(method.value for method in ConsentMethod)

# Levels at which events keep their identifying context.
_IDENTIFIED_LEVELS = frozenset(
    {ConsentLevel.ANALYTICS, ConsentLevel.MARKETING, ConsentLevel.FULL}
)

_MS_PER_DAY = 24 * 60 * 60 * 1000


class GranularConsent(BaseModel):
    """Independent per-purpose permissions."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    essential: bool = True
    functional: bool = False
    analytics: bool = False
    performance: bool = False
    marketing: bool = False
    personalization: bool = False
    third_party: bool = False


class ConsentRecord(BaseModel):
    """A visitor's consent at one point in time."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    consent_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: int = Field(default_factory=lambda: _now_ms())
    version: str = "1.0"
    level: str = ConsentLevel.ESSENTIAL.value
    granular_consent: GranularConsent = Field(default_factory=GranularConsent)
    method: str = ConsentMethod.AUTO_ESSENTIAL.value
    ip_hash: str | None = None
    user_agent: str = ""
    expires_at: int | None = None
    last_updated: int = Field(default_factory=lambda: _now_ms())
    withdrawn_at: int | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _level_value(level: ConsentLevel | str | ConsentRecord) -> str:
    if isinstance(level, ConsentRecord):
        return level.level
    if isinstance(level, ConsentLevel):
        return level.value
    return str(level)


def consent_rank(level: ConsentLevel | str) -> int:
    """Position in the consent hierarchy; -1 for unknown levels."""
    value = _level_value(level)
    for index, known in enumerate(CONSENT_HIERARCHY):
        if known.value == value:
            return index
    return -1


def is_permitted(
    required_level: ConsentLevel | str,
    record: ConsentRecord | ConsentLevel | str,
) -> bool:
    """True iff the record's level ranks at or above ``required_level``.

    Unknown levels on either side never grant permission.
    """
    required = consent_rank(required_level)
    current = consent_rank(_level_value(record))
    if required < 0 or current < 0:
        return False
    return current >= required


def anonymization_for(level: ConsentLevel | str) -> bool:
    """Whether events recorded under ``level`` must be anonymized.

    Only ``analytics`` and above keep identifying context.
    """
    return _level_value(level) not in {lvl.value for lvl in _IDENTIFIED_LEVELS}


_LEVEL_GRANTS: dict[ConsentLevel, frozenset[str]] = {
    ConsentLevel.NONE: frozenset(),
    ConsentLevel.ESSENTIAL: frozenset(),
    ConsentLevel.FUNCTIONAL: frozenset({"functional"}),
    ConsentLevel.ANALYTICS: frozenset({"functional", "analytics", "performance"}),
    ConsentLevel.MARKETING: frozenset(
        {"functional", "analytics", "performance", "marketing", "personalization"}
    ),
    ConsentLevel.FULL: frozenset(
        {
            "functional",
            "analytics",
            "performance",
            "marketing",
            "personalization",
            "third_party",
        }
    ),
}


def map_level_to_granular(level: ConsentLevel | str) -> GranularConsent:
    """Default granular permissions implied by an overall level."""
    try:
        grants = _LEVEL_GRANTS[ConsentLevel(_level_value(level))]
    except ValueError:
        grants = frozenset()
    return GranularConsent(**{name: True for name in grants})


def is_tracking_allowed(record: ConsentRecord, purpose: str) -> bool:
    """Check one granular purpose (``analytics``, ``thirdParty``, ...)."""
    aliases = {info.alias: name for name, info in GranularConsent.model_fields.items()}
    field = aliases.get(purpose, purpose)
    if field not in GranularConsent.model_fields:
        return False
    return getattr(record.granular_consent, field) is True


_CATEGORY_REQUIREMENTS: dict[EventCategory, ConsentLevel] = {
    EventCategory.PAGE_VIEW: ConsentLevel.ESSENTIAL,
    EventCategory.PAGE_SCROLL: ConsentLevel.ESSENTIAL,
    EventCategory.PAGE_EXIT: ConsentLevel.ESSENTIAL,
    EventCategory.NEWSLETTER_SIGNUP: ConsentLevel.MARKETING,
    EventCategory.NEWSLETTER_SUCCESS: ConsentLevel.MARKETING,
    EventCategory.NEWSLETTER_ERROR: ConsentLevel.MARKETING,
}


def required_consent_for(category: EventCategory | str) -> ConsentLevel:
    """Minimum consent level needed to record an event of ``category``."""
    try:
        key = EventCategory(category)
    except ValueError:
        return ConsentLevel.ANALYTICS
    return _CATEGORY_REQUIREMENTS.get(key, ConsentLevel.ANALYTICS)


def respects_do_not_track(header_value: str | None) -> bool:
    """Interpret a ``DNT`` request header."""
    return header_value in {"1", "yes"}


def validate_consent_record(record: ConsentRecord | Mapping[str, Any]) -> ValidationResult:
    """Check a consent record's shape and its level/granular consistency."""
    if isinstance(record, Mapping):
        try:
            record = ConsentRecord.model_validate(record)
        except ValueError as exc:
            return ValidationResult.from_errors([f"Malformed consent record: {exc}"])

    errors: list[str] = []
    if not record.consent_id:
        errors.append("Consent ID is required and must be a non-empty string")
    if record.timestamp <= 0:
        errors.append("Consent timestamp must be a positive number")
    if not record.version:
        errors.append("Consent version is required")
    if record.level not in CONSENT_LEVEL_VALUES:
        errors.append(f"Invalid consent level: {record.level}")
    if record.method not in CONSENT_METHOD_VALUES:
        errors.append(f"Invalid consent method: {record.method}")
    if record.last_updated <= 0:
        errors.append("Last updated must be a positive number")
    if not record.granular_consent.essential:
        errors.append("Essential consent cannot be withdrawn while a record exists")
    if is_permitted(ConsentLevel.ANALYTICS, record) and not record.granular_consent.analytics:
        errors.append(
            f"Consent level '{record.level}' requires granular analytics consent"
        )
    return ValidationResult.from_errors(errors)


def is_consent_active(record: ConsentRecord, now_ms: int | None = None) -> bool:
    """Not withdrawn and not past its expiry."""
    now = now_ms if now_ms is not None else _now_ms()
    if record.withdrawn_at is not None:
        return False
    if record.expires_at is not None and now > record.expires_at:
        return False
    return True


def create_default_consent(
    *,
    version: str = "1.0",
    expiry_days: int = 365,
    user_agent: str = "",
    ip_hash: str | None = None,
) -> ConsentRecord:
    """Essential-only record assumed before the visitor answers the banner."""
    now = _now_ms()
    return ConsentRecord(
        timestamp=now,
        version=version,
        level=ConsentLevel.ESSENTIAL.value,
        granular_consent=map_level_to_granular(ConsentLevel.ESSENTIAL),
        method=ConsentMethod.AUTO_ESSENTIAL.value,
        user_agent=user_agent,
        ip_hash=ip_hash,
        expires_at=now + expiry_days * _MS_PER_DAY,
        last_updated=now,
    )


def granular_from_mapping(values: Mapping[str, Any]) -> GranularConsent:
    """Merge a partial snake_case or camelCase mapping over the defaults."""
    aliases = {info.alias: name for name, info in GranularConsent.model_fields.items()}
    merged = GranularConsent().model_dump()
    for key, value in values.items():
        name = aliases.get(key, key)
        if name in merged:
            merged[name] = value
    return GranularConsent.model_validate(merged)


def update_consent(
    previous: ConsentRecord | None,
    level: ConsentLevel | str,
    granular: Mapping[str, Any] | GranularConsent | None = None,
    method: ConsentMethod | str = ConsentMethod.SETTINGS_UPDATE,
    *,
    version: str = "1.0",
    expiry_days: int = 365,
    user_agent: str = "",
    ip_hash: str | None = None,
) -> ConsentRecord:
    """Build the record that replaces ``previous``.

    The consent id and original timestamp carry over so the history of one
    visitor's consent stays linked; ``last_updated`` marks the change.
    Without ``granular`` the permissions follow the level. The result is not
    validated; pass it through ``validate_consent_record`` before accepting it.
    """
    if isinstance(granular, GranularConsent):
        granular_consent = granular
    elif granular is not None:
        granular_consent = granular_from_mapping(granular)
    else:
        granular_consent = map_level_to_granular(level)

    now = _now_ms()
    return ConsentRecord(
        consent_id=previous.consent_id if previous else str(uuid.uuid4()),
        timestamp=previous.timestamp if previous else now,
        version=version,
        level=_level_value(level),
        granular_consent=granular_consent,
        method=method.value if isinstance(method, ConsentMethod) else str(method),
        user_agent=user_agent or (previous.user_agent if previous else ""),
        ip_hash=ip_hash if ip_hash is not None else (previous.ip_hash if previous else None),
        expires_at=now + expiry_days * _MS_PER_DAY,
        last_updated=now,
    )


def withdraw_consent(previous: ConsentRecord) -> ConsentRecord:
    """Record a withdrawal: level ``none``, essential-only permissions."""
    now = _now_ms()
    return previous.model_copy(
        update={
            "level": ConsentLevel.NONE.value,
            "granular_consent": map_level_to_granular(ConsentLevel.NONE),
            "method": ConsentMethod.GDPR_REQUEST.value,
            "withdrawn_at": now,
            "last_updated": now,
        }
    )
