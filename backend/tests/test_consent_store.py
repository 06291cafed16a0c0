"""Tests for the Redis consent store."""

import pytest

from services.consent import ConsentLevel, create_default_consent, update_consent, withdraw_consent
from services.consent_store import ConsentStore


@pytest.mark.asyncio
class TestConsentStore:
    async def test_get_missing(self, fake_redis):
        assert await ConsentStore(fake_redis).get("nope") is None

    async def test_save_and_get(self, fake_redis):
        store = ConsentStore(fake_redis)
        record = create_default_consent()
        await store.save(record)
        assert await store.get(record.consent_id) == record

    async def test_latest_version_wins(self, fake_redis):
        store = ConsentStore(fake_redis)
        original = create_default_consent()
        updated = update_consent(original, ConsentLevel.ANALYTICS)
        await store.save(original)
        await store.save(updated)

        current = await store.get(original.consent_id)
        assert current.level == "analytics"

    async def test_history_is_append_only(self, fake_redis):
        store = ConsentStore(fake_redis)
        original = create_default_consent()
        updated = update_consent(original, ConsentLevel.FULL)
        withdrawn = withdraw_consent(updated)
        for record in (original, updated, withdrawn):
            await store.save(record)

        history = await store.history(original.consent_id)
        assert [r.level for r in history] == ["essential", "full", "none"]
        assert history[-1].withdrawn_at is not None

    async def test_records_expire(self, fake_redis):
        store = ConsentStore(fake_redis)
        record = create_default_consent()
        await store.save(record)
        ttl = await fake_redis.ttl(f"consent:{record.consent_id}")
        assert 0 < ttl <= 365 * 86400
