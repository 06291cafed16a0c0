"""Redis-backed event storage and dashboard aggregation.

Keeps a bounded list of recent events per day plus daily counters by
category and page path. Keys expire after the retention window, so nothing
here outlives ``event_retention_days``.

Only validated events reach this store. Events flagged ``anonymized`` are
stripped of visitor-identifying context before they are written.
"""

from __future__ import annotations

import json
from datetime import UTC, date, datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field

from app.config import get_settings
from app.logging_config import get_logger
from services.event_models import AnalyticsEvent, EventCategory

logger = get_logger(__name__)

_EVENTS_PREFIX = "events:"
_CATEGORY_PREFIX = "events_by_category:"
_PATH_PREFIX = "page_views_by_path:"
_SESSIONS_PREFIX = "event_sessions:"


class PageStat(BaseModel):
    path: str
    page_views: int


class DailyCount(BaseModel):
    date: str
    events: int
    page_views: int


class DashboardSummary(BaseModel):
    """Aggregated view over the last ``days`` days."""

    period_days: int
    total_events: int = 0
    total_page_views: int = 0
    unique_sessions: int = 0
    events_per_session: float = 0.0
    category_counts: dict[str, int] = Field(default_factory=dict)
    top_pages: list[PageStat] = Field(default_factory=list)
    daily: list[DailyCount] = Field(default_factory=list)
    generated_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())


def _decode(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else value


def _event_day(event: AnalyticsEvent) -> str:
    return datetime.fromtimestamp(event.timestamp / 1000, tz=UTC).date().isoformat()


class EventStore:
    """Stores events and answers dashboard queries."""

    def __init__(self, redis_client: Any) -> None:
        self._redis = redis_client
        settings = get_settings()
        self._ttl = settings.event_retention_days * 86400
        self._recent_limit = settings.recent_events_limit

    async def record(self, event: AnalyticsEvent) -> None:
        """Persist one event and bump its day's counters."""
        event = event.stripped()
        day = _event_day(event)
        pipe = self._redis.pipeline()

        events_key = f"{_EVENTS_PREFIX}{day}"
        pipe.lpush(events_key, json.dumps(event.to_wire()))
        pipe.ltrim(events_key, 0, self._recent_limit - 1)
        pipe.expire(events_key, self._ttl)

        category_key = f"{_CATEGORY_PREFIX}{day}"
        pipe.hincrby(category_key, event.category, 1)
        pipe.expire(category_key, self._ttl)

        if event.category == EventCategory.PAGE_VIEW.value:
            path_key = f"{_PATH_PREFIX}{day}"
            pipe.hincrby(path_key, event.page.path, 1)
            pipe.expire(path_key, self._ttl)

        sessions_key = f"{_SESSIONS_PREFIX}{day}"
        pipe.sadd(sessions_key, event.session_id)
        pipe.expire(sessions_key, self._ttl)

        await pipe.execute()

    async def recent(self, day: date | None = None, limit: int = 50) -> list[AnalyticsEvent]:
        """Most recent events of ``day`` (default today), newest first."""
        day = day or datetime.now(UTC).date()
        raw = await self._redis.lrange(f"{_EVENTS_PREFIX}{day.isoformat()}", 0, limit - 1)
        return [AnalyticsEvent.model_validate_json(_decode(item)) for item in raw]

    async def summary(self, days: int, today: date | None = None) -> DashboardSummary:
        """Aggregate counters over the ``days`` days ending ``today``."""
        today = today or datetime.now(UTC).date()
        result = DashboardSummary(period_days=days)
        categories: dict[str, int] = {}
        pages: dict[str, int] = {}
        session_keys: list[str] = []

        for offset in range(days - 1, -1, -1):
            day = (today - timedelta(days=offset)).isoformat()
            day_categories = await self._read_counts(f"{_CATEGORY_PREFIX}{day}")
            day_pages = await self._read_counts(f"{_PATH_PREFIX}{day}")

            for category, count in day_categories.items():
                categories[category] = categories.get(category, 0) + count
            for path, count in day_pages.items():
                pages[path] = pages.get(path, 0) + count

            day_events = sum(day_categories.values())
            day_views = day_categories.get(EventCategory.PAGE_VIEW.value, 0)
            if day_events:
                result.daily.append(DailyCount(date=day, events=day_events, page_views=day_views))
            session_keys.append(f"{_SESSIONS_PREFIX}{day}")

        sessions = await self._redis.sunion(session_keys) if session_keys else set()

        result.category_counts = dict(sorted(categories.items(), key=lambda kv: -kv[1]))
        result.total_events = sum(categories.values())
        result.total_page_views = categories.get(EventCategory.PAGE_VIEW.value, 0)
        result.unique_sessions = len(sessions)
        if result.unique_sessions:
            result.events_per_session = round(result.total_events / result.unique_sessions, 2)
        result.top_pages = [
            PageStat(path=path, page_views=count)
            for path, count in sorted(pages.items(), key=lambda kv: (-kv[1], kv[0]))[:10]
        ]
        return result

    async def _read_counts(self, key: str) -> dict[str, int]:
        raw = await self._redis.hgetall(key)
        return {_decode(k): int(v) for k, v in raw.items()}
