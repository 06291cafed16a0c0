"""Tests for event ingestion."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from services.event_factory import EventFactory
from services.event_ingest import EventIngestor
from services.event_store import EventStore
from services.session_context import SessionContext

NOW_MS = 1_770_000_000_000


def _payload(**overrides):
    payload = {
        "category": "project_click",
        "action": "click",
        "consentLevel": "analytics",
        "page": {"path": "/projects", "title": "Projects", "url": "/projects"},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def store():
    store = MagicMock(spec=EventStore)
    store.record = AsyncMock()
    return store


@pytest.fixture
def ingestor(store):
    return EventIngestor(EventFactory(SessionContext("s1")), store)


@pytest.mark.asyncio
class TestEventIngestor:
    async def test_accepts_and_stores(self, ingestor, store):
        outcome = await ingestor.ingest(_payload())
        assert outcome.accepted is True
        assert outcome.stored is True
        assert outcome.event_id
        stored_event = store.record.call_args[0][0]
        assert stored_event.session_id == "s1"
        assert stored_event.anonymized is True

    async def test_rejects_non_object(self, ingestor, store):
        outcome = await ingestor.ingest(["not", "an", "object"])
        assert outcome.accepted is False
        assert outcome.reason == "invalid"
        assert outcome.errors == ["Event must be a JSON object"]
        store.record.assert_not_called()

    async def test_rejects_invalid_event(self, ingestor, store):
        outcome = await ingestor.ingest(_payload(category="bogus", action=""))
        assert outcome.reason == "invalid"
        assert outcome.errors == [
            "Invalid event category: bogus",
            "Action is required and must be a non-empty string",
        ]
        store.record.assert_not_called()

    async def test_rejects_wrong_types(self, ingestor):
        outcome = await ingestor.ingest(_payload(value="lots"))
        assert outcome.reason == "invalid"
        assert outcome.errors[0].startswith("value:")

    async def test_rejects_insufficient_consent(self, ingestor, store):
        outcome = await ingestor.ingest(_payload(consentLevel="essential"))
        assert outcome.accepted is False
        assert outcome.reason == "consent"
        assert outcome.required_consent == "analytics"
        assert outcome.provided_consent == "essential"
        store.record.assert_not_called()

    async def test_page_view_with_essential_consent(self, ingestor):
        outcome = await ingestor.ingest(_payload(category="page_view", consentLevel="essential"))
        assert outcome.accepted is True

    async def test_do_not_track_accepts_without_storing(self, store):
        ingestor = EventIngestor(EventFactory(SessionContext()), store, do_not_track=True)
        outcome = await ingestor.ingest(_payload())
        assert outcome.accepted is True
        assert outcome.stored is False
        store.record.assert_not_called()

    async def test_sampling(self, store):
        ingestor = EventIngestor(
            EventFactory(SessionContext()), store, sample_rate=0.5, sampler=lambda: 0.9
        )
        outcome = await ingestor.ingest(_payload())
        assert outcome.accepted is True
        assert outcome.stored is False

    async def test_store_failure_reported(self, ingestor, store):
        store.record.side_effect = ConnectionError("redis down")
        outcome = await ingestor.ingest(_payload())
        assert outcome.accepted is False
        assert outcome.stored is False
        assert outcome.reason == "storage"
        assert outcome.errors == ["Event could not be stored"]

    async def test_rejects_far_future_timestamp(self, store):
        ingestor = EventIngestor(EventFactory(SessionContext("s1"), clock=lambda: NOW_MS), store)
        outcome = await ingestor.ingest(_payload(timestamp=10**17))
        assert outcome.accepted is False
        assert outcome.reason == "invalid"
        assert outcome.errors == ["Timestamp appears to be in the future"]
        store.record.assert_not_called()

    async def test_rejects_timestamp_past_retention(self, store):
        ingestor = EventIngestor(EventFactory(SessionContext("s1"), clock=lambda: NOW_MS), store)
        outcome = await ingestor.ingest(_payload(timestamp=NOW_MS - 31 * 86_400_000))
        assert outcome.errors == ["Event appears too old"]

    async def test_accepts_small_clock_skew(self, store):
        ingestor = EventIngestor(EventFactory(SessionContext("s1"), clock=lambda: NOW_MS), store)
        outcome = await ingestor.ingest(_payload(timestamp=NOW_MS + 60_000))
        assert outcome.accepted is True

    async def test_pipeline_receives_event(self, store):
        pipeline = MagicMock()
        pipeline.record_event = AsyncMock()
        db_session = AsyncMock()
        ingestor = EventIngestor(
            EventFactory(SessionContext()), store, pipeline=pipeline, db_session=db_session
        )
        await ingestor.ingest(_payload())
        pipeline.record_event.assert_awaited_once()
        assert pipeline.record_event.call_args[0][0] is db_session
