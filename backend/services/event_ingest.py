"""Event ingestion.

Turns client-supplied event payloads into stored events: fill gaps with the
factory, validate, bound the timestamp, check category consent, honour Do Not
Track and sampling, then hand the event to the Redis store and the aggregate
pipeline.

Rejections are returned as outcomes, not raised, so a batch can report each
event separately.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.logging_config import get_logger
from app.metrics import EVENTS_ACCEPTED, EVENTS_REJECTED, EVENTS_SKIPPED_DNT
from services.analytics_pipeline import AnalyticsPipeline
from services.consent import required_consent_for
from services.event_factory import EventFactory
from services.event_models import AnalyticsEvent, PageContext, UserContext, ValidationResult
from services.event_store import EventStore
from services.event_validator import check_event_consent, validate_event

logger = get_logger(__name__)


class IngestOutcome(BaseModel):
    """Result of ingesting one event payload."""

    accepted: bool
    stored: bool = False
    event_id: str | None = None
    reason: str | None = None  # invalid | consent | storage
    errors: list[str] = Field(default_factory=list)
    required_consent: str | None = None
    provided_consent: str | None = None


def _accepted(event: AnalyticsEvent, *, stored: bool) -> IngestOutcome:
    EVENTS_ACCEPTED.labels(category=event.category, consent_level=event.consent_level).inc()
    return IngestOutcome(accepted=True, stored=stored, event_id=event.id)


class EventIngestor:
    """Validates and stores inbound events for one request."""

    def __init__(
        self,
        factory: EventFactory,
        store: EventStore,
        *,
        pipeline: AnalyticsPipeline | None = None,
        db_session: AsyncSession | None = None,
        do_not_track: bool = False,
        sample_rate: float = 1.0,
        sampler: Callable[[], float] = random.random,
    ) -> None:
        self.factory = factory
        self.store = store
        self.pipeline = pipeline
        self.db_session = db_session
        self.do_not_track = do_not_track
        self.sample_rate = sample_rate
        self._sampler = sampler
        settings = get_settings()
        self._max_skew_ms = settings.max_clock_skew_seconds * 1000
        self._max_age_ms = settings.event_retention_days * 86_400_000

    async def ingest(
        self,
        raw: Any,
        *,
        default_page: PageContext | None = None,
        default_user: UserContext | None = None,
    ) -> IngestOutcome:
        if not isinstance(raw, Mapping):
            EVENTS_REJECTED.labels(reason="invalid").inc()
            return IngestOutcome(
                accepted=False, reason="invalid", errors=["Event must be a JSON object"]
            )

        try:
            event = self.factory.complete(
                raw, default_page=default_page, default_user=default_user
            )
        except PydanticValidationError as exc:
            EVENTS_REJECTED.labels(reason="invalid").inc()
            return IngestOutcome(
                accepted=False,
                reason="invalid",
                errors=ValidationResult.from_pydantic(exc).errors,
            )

        validation = validate_event(event)
        if validation.valid:
            validation = self._check_timestamp(event)
        if not validation.valid:
            EVENTS_REJECTED.labels(reason="invalid").inc()
            return IngestOutcome(accepted=False, reason="invalid", errors=validation.errors)

        consent = check_event_consent(event)
        if not consent.valid:
            EVENTS_REJECTED.labels(reason="consent").inc()
            logger.info(
                "event_consent_insufficient",
                category=event.category,
                consent_level=event.consent_level,
            )
            return IngestOutcome(
                accepted=False,
                reason="consent",
                errors=consent.errors,
                required_consent=required_consent_for(event.category).value,
                provided_consent=event.consent_level,
            )

        if self.do_not_track:
            EVENTS_SKIPPED_DNT.inc()
            return _accepted(event, stored=False)

        if self.sample_rate < 1.0 and self._sampler() >= self.sample_rate:
            return _accepted(event, stored=False)

        if not await self._persist(event):
            EVENTS_REJECTED.labels(reason="storage").inc()
            return IngestOutcome(
                accepted=False,
                reason="storage",
                event_id=event.id,
                errors=["Event could not be stored"],
            )
        return _accepted(event, stored=True)

    def _check_timestamp(self, event: AnalyticsEvent) -> ValidationResult:
        now = self.factory.now()
        errors: list[str] = []
        if event.timestamp > now + self._max_skew_ms:
            errors.append("Timestamp appears to be in the future")
        elif event.timestamp < now - self._max_age_ms:
            errors.append("Event appears too old")
        return ValidationResult.from_errors(errors)

    async def _persist(self, event: AnalyticsEvent) -> bool:
        try:
            await self.store.record(event)
        except Exception:
            logger.exception("event_store_failed", event_id=event.id)
            return False

        if self.pipeline is not None and self.db_session is not None:
            await self.pipeline.record_event(self.db_session, event)

        logger.info(
            "event_recorded",
            event_id=event.id,
            category=event.category,
            action=event.action,
        )
        return True
