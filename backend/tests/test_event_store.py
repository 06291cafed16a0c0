"""Tests for the Redis event store and dashboard aggregation."""

from datetime import UTC, date, datetime, timedelta

import pytest

from services.consent import ConsentLevel
from services.event_factory import EventFactory
from services.event_models import EventCategory, PageContext, UserContext
from services.event_store import EventStore
from services.session_context import SessionContext

TODAY = date(2026, 3, 14)


def _ms(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, 12, tzinfo=UTC).timestamp() * 1000)


def _factory(session_id: str, day: date = TODAY) -> EventFactory:
    return EventFactory(SessionContext(session_id), clock=lambda: _ms(day))


def _page(path: str) -> PageContext:
    return PageContext(path=path, title=path, url=f"https://example.com{path}")


@pytest.mark.asyncio
class TestEventStore:
    async def test_record_and_recent(self, fake_redis):
        store = EventStore(fake_redis)
        event = _factory("s1").create_event(EventCategory.PAGE_VIEW, "view", ConsentLevel.ESSENTIAL)
        await store.record(event)

        recent = await store.recent(TODAY)
        assert recent == [event]

    async def test_anonymized_event_stored_without_identifiers(self, fake_redis):
        store = EventStore(fake_redis)
        user = UserContext(user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/120.0", country="DE")
        event = _factory("s1").create_event(
            EventCategory.PAGE_VIEW,
            "view",
            ConsentLevel.ESSENTIAL,
            user=user,
            user_id="alice@example.com",
        )
        await store.record(event)

        raw = await fake_redis.lrange(f"events:{TODAY.isoformat()}", 0, -1)
        assert "alice@example.com" not in raw[0]
        assert "Firefox" not in raw[0]
        stored = (await store.recent(TODAY))[0]
        assert stored.user_id is None
        assert stored.user.user_agent == "unknown"
        assert stored.user.country is None
        assert stored.anonymized is True

    async def test_identified_event_kept_with_consent(self, fake_redis):
        store = EventStore(fake_redis)
        user = UserContext(user_agent="Mozilla/5.0 Firefox/120.0")
        event = _factory("s1").create_event(
            EventCategory.PAGE_VIEW, "view", ConsentLevel.ANALYTICS, user=user, user_id="u-1"
        )
        await store.record(event)

        stored = (await store.recent(TODAY))[0]
        assert stored == event

    async def test_recent_newest_first(self, fake_redis):
        store = EventStore(fake_redis)
        factory = _factory("s1")
        first = factory.create_event(EventCategory.PAGE_VIEW, "view", ConsentLevel.ESSENTIAL)
        second = factory.create_event(EventCategory.PAGE_EXIT, "exit", ConsentLevel.ESSENTIAL)
        await store.record(first)
        await store.record(second)

        recent = await store.recent(TODAY, limit=1)
        assert [e.id for e in recent] == [second.id]

    async def test_keys_expire(self, fake_redis):
        store = EventStore(fake_redis)
        event = _factory("s1").create_event(EventCategory.PAGE_VIEW, "view", ConsentLevel.ESSENTIAL)
        await store.record(event)
        ttl = await fake_redis.ttl(f"events:{TODAY.isoformat()}")
        assert 0 < ttl <= 30 * 86400

    async def test_summary(self, fake_redis):
        store = EventStore(fake_redis)
        a = _factory("session-a")
        b = _factory("session-b", TODAY - timedelta(days=1))

        for event in [
            a.create_event(EventCategory.PAGE_VIEW, "view", ConsentLevel.ESSENTIAL, page=_page("/")),
            a.create_event(EventCategory.PAGE_VIEW, "view", ConsentLevel.ESSENTIAL, page=_page("/projects")),
            a.create_event(EventCategory.PROJECT_CLICK, "click", ConsentLevel.ANALYTICS),
            b.create_event(EventCategory.PAGE_VIEW, "view", ConsentLevel.ESSENTIAL, page=_page("/projects")),
        ]:
            await store.record(event)

        summary = await store.summary(7, today=TODAY)
        assert summary.period_days == 7
        assert summary.total_events == 4
        assert summary.total_page_views == 3
        assert summary.unique_sessions == 2
        assert summary.events_per_session == 2.0
        assert summary.category_counts == {"page_view": 3, "project_click": 1}
        assert summary.top_pages[0].path == "/projects"
        assert summary.top_pages[0].page_views == 2
        assert [d.date for d in summary.daily] == [
            (TODAY - timedelta(days=1)).isoformat(),
            TODAY.isoformat(),
        ]

    async def test_summary_window_excludes_older_days(self, fake_redis):
        store = EventStore(fake_redis)
        old = _factory("old", TODAY - timedelta(days=3))
        await store.record(old.create_event(EventCategory.PAGE_VIEW, "view", ConsentLevel.ESSENTIAL))

        summary = await store.summary(1, today=TODAY)
        assert summary.total_events == 0
        assert summary.unique_sessions == 0
        assert summary.events_per_session == 0.0
        assert summary.daily == []
