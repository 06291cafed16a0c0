"""Anonymous analytics pipeline.

Rolls accepted events up into daily per-category/per-path counts and keeps
an audit row for every consent record version in PostgreSQL.

PRIVACY RULES:
- NO IP addresses, user agents or user ids
- NO raw events; only counts keyed by day, category and path
- Consent audit rows carry the opaque consent id, level and method only
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.logging_config import get_logger
from db.models import ConsentAudit, EventAggregate
from services.consent import ConsentRecord
from services.event_models import AnalyticsEvent

logger = get_logger(__name__)


class AnalyticsPipeline:
    """Writes anonymous aggregates and consent audit rows to PostgreSQL.

    Failures are logged and swallowed: analytics must never break the
    request that produced it.
    """

    async def record_event(self, session: AsyncSession, event: AnalyticsEvent) -> None:
        """Increment the day's counter for the event's category and path."""
        try:
            day = datetime.fromtimestamp(event.timestamp / 1000, tz=UTC).date()
            stmt = (
                insert(EventAggregate)
                .values(
                    event_date=day,
                    category=event.category,
                    path=event.page.path[:500],
                    consent_level=event.consent_level,
                    count=1,
                )
                .on_conflict_do_update(
                    constraint="uq_event_aggregates_day",
                    set_={"count": EventAggregate.count + 1},
                )
            )
            await session.execute(stmt)

            logger.info(
                "event_aggregated",
                category=event.category,
                day=day.isoformat(),
            )

        except Exception:
            logger.exception("event_aggregation_failed")

    async def record_consent(self, session: AsyncSession, record: ConsentRecord) -> None:
        """Append an audit row for one consent record version."""
        try:
            audit = ConsentAudit(
                consent_id=record.consent_id,
                level=record.level,
                method=record.method,
                version=record.version,
                recorded_at_ms=record.last_updated,
                withdrawn=record.withdrawn_at is not None,
            )
            session.add(audit)

            logger.info(
                "consent_audited",
                consent_id=record.consent_id,
                level=record.level,
                method=record.method,
            )

        except Exception:
            logger.exception("consent_audit_failed")
