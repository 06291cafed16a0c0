"""Tests for MonitoringStore using fakeredis."""

import json

import pytest

from app.config import get_settings
from services.error_reports import ErrorReport
from services.event_models import PageContext
from services.monitoring_store import MonitoringStore, percentile
from services.performance_reports import PerformanceReport, VitalSample

NOW_MS = 1_770_000_000_000
HOUR_MS = 3_600_000


def _error(report_id, message="boom", severity="medium", error_type="javascript_error"):
    return ErrorReport(
        id=report_id,
        timestamp=NOW_MS,
        type=error_type,
        severity=severity,
        message=message,
        page=PageContext(path="/", title="Home", url="https://example.com/"),
        consent_level="analytics",
    )


def _performance(*vitals, path="/"):
    return PerformanceReport(
        timestamp=NOW_MS,
        path=path,
        vitals=[VitalSample(name=name, value=value, rating="good") for name, value in vitals],
        consent_level="analytics",
    )


def test_percentile_nearest_rank():
    assert percentile([4, 1, 3, 2], 0.75) == 3
    assert percentile([7], 0.75) == 7


@pytest.mark.asyncio
class TestErrors:
    async def test_recorded_newest_first(self, fake_redis):
        store = MonitoringStore(fake_redis)
        await store.record_error(_error("a"), NOW_MS - 10)
        await store.record_error(_error("b"), NOW_MS)

        raw = await fake_redis.lrange("monitoring:errors", 0, -1)
        assert [json.loads(item)["report"]["id"] for item in raw] == ["b", "a"]
        assert json.loads(raw[0])["receivedAt"] == NOW_MS

    async def test_list_capped(self, fake_redis, monkeypatch):
        monkeypatch.setenv("PA_ERROR_STORAGE_LIMIT", "3")
        get_settings.cache_clear()
        try:
            store = MonitoringStore(fake_redis)
            for i in range(5):
                await store.record_error(_error(str(i)), NOW_MS)
        finally:
            get_settings.cache_clear()
        assert await fake_redis.llen("monitoring:errors") == 3

    async def test_summary(self, fake_redis):
        store = MonitoringStore(fake_redis)
        await store.record_error(_error("old", message="stale"), NOW_MS - 2 * 24 * HOUR_MS)
        await store.record_error(_error("day", severity="high"), NOW_MS - 3 * HOUR_MS)
        await store.record_error(
            _error("hour", error_type="network_error"), NOW_MS - 60_000
        )

        summary = await store.error_summary(NOW_MS)
        assert summary.total_errors == 3
        assert summary.recent_errors == 1
        assert summary.daily_errors == 2
        assert summary.error_rate == pytest.approx(66.67)
        assert summary.severity_distribution == {"medium": 2, "high": 1}
        assert summary.type_distribution == {"javascript_error": 2, "network_error": 1}
        assert summary.top_errors[0].message == "boom"
        assert summary.top_errors[0].count == 2
        assert summary.last_error_time == NOW_MS - 60_000
        assert [s.id for s in summary.recent_sample] == ["hour"]

    async def test_empty_summary(self, fake_redis):
        summary = await MonitoringStore(fake_redis).error_summary(NOW_MS)
        assert summary.total_errors == 0
        assert summary.last_error_time is None


@pytest.mark.asyncio
class TestPerformance:
    async def test_summary(self, fake_redis):
        store = MonitoringStore(fake_redis)
        await store.record_performance(_performance(("lcp", 1200), path="/a"), NOW_MS - 5)
        await store.record_performance(
            _performance(("lcp", 1500), ("cls", 0.02), path="/b"), NOW_MS
        )

        summary = await store.performance_summary()
        assert summary.total_reports == 2
        assert summary.last_updated == NOW_MS
        assert [(s.path, s.vitals) for s in summary.recent_reports] == [("/b", 2), ("/a", 1)]

    async def test_vital_stats_rated_at_p75(self, fake_redis):
        store = MonitoringStore(fake_redis)
        for value in (1000, 2000, 4500, 5000):
            await store.record_performance(_performance(("lcp", value)), NOW_MS)

        stats = await store.vital_stats()
        assert set(stats) == {"lcp"}
        lcp = stats["lcp"]
        assert lcp.samples == 4
        assert lcp.p75 == 4500
        assert lcp.average == 3125
        assert lcp.rating == "poor"
        assert lcp.ratings == {"good": 2, "poor": 2}
