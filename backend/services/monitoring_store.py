"""Redis-backed storage for error and performance reports.

Both kinds live in capped lists, newest first, so storage stays bounded no
matter how many clients report. Summaries are computed from the lists on
demand.
"""

from __future__ import annotations

import json
import math
from collections import Counter
from typing import Any

from pydantic import BaseModel, Field

from app.config import get_settings
from services.error_reports import ErrorReport
from services.performance_reports import VITAL_THRESHOLDS, PerformanceReport, rate_vital

_ERRORS_KEY = "monitoring:errors"
_PERFORMANCE_KEY = "monitoring:performance"

_HOUR_MS = 60 * 60 * 1000
_DAY_MS = 24 * _HOUR_MS


class ErrorCount(BaseModel):
    message: str
    count: int


class ErrorSample(BaseModel):
    id: str
    type: str
    severity: str
    message: str
    path: str
    received_at: int


class ErrorSummary(BaseModel):
    total_errors: int = 0
    recent_errors: int = 0
    daily_errors: int = 0
    error_rate: float = 0.0
    severity_distribution: dict[str, int] = Field(default_factory=dict)
    type_distribution: dict[str, int] = Field(default_factory=dict)
    top_errors: list[ErrorCount] = Field(default_factory=list)
    last_error_time: int | None = None
    recent_sample: list[ErrorSample] = Field(default_factory=list)


class PerformanceSample(BaseModel):
    received_at: int
    path: str
    device_type: str
    consent_level: str
    vitals: int


class PerformanceSummary(BaseModel):
    total_reports: int = 0
    recent_reports: list[PerformanceSample] = Field(default_factory=list)
    last_updated: int | None = None


class VitalStats(BaseModel):
    """Distribution of one vital; ``rating`` is taken at the 75th percentile."""

    name: str
    samples: int
    average: float
    p75: float
    rating: str
    ratings: dict[str, int]


def _decode(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else value


def percentile(values: list[float], fraction: float) -> float:
    """Nearest-rank percentile of a non-empty list."""
    ordered = sorted(values)
    rank = max(1, math.ceil(fraction * len(ordered)))
    return ordered[rank - 1]


class MonitoringStore:
    """Capped lists of error and performance reports."""

    def __init__(self, redis_client: Any) -> None:
        self._redis = redis_client
        settings = get_settings()
        self._error_limit = settings.error_storage_limit
        self._performance_limit = settings.performance_storage_limit

    async def _push(self, key: str, limit: int, received_at: int, report: BaseModel) -> None:
        entry = {
            "receivedAt": received_at,
            "report": report.model_dump(mode="json", by_alias=True),
        }
        pipe = self._redis.pipeline()
        pipe.lpush(key, json.dumps(entry))
        pipe.ltrim(key, 0, limit - 1)
        await pipe.execute()

    async def _entries(self, key: str) -> list[dict[str, Any]]:
        raw = await self._redis.lrange(key, 0, -1)
        return [json.loads(_decode(item)) for item in raw]

    async def record_error(self, report: ErrorReport, received_at: int) -> None:
        await self._push(_ERRORS_KEY, self._error_limit, received_at, report)

    async def record_performance(self, report: PerformanceReport, received_at: int) -> None:
        await self._push(_PERFORMANCE_KEY, self._performance_limit, received_at, report)

    async def error_summary(self, now_ms: int) -> ErrorSummary:
        entries = await self._entries(_ERRORS_KEY)
        if not entries:
            return ErrorSummary()

        reports = [(e["receivedAt"], ErrorReport.model_validate(e["report"])) for e in entries]
        recent = [(at, r) for at, r in reports if at > now_ms - _HOUR_MS]
        daily = [(at, r) for at, r in reports if at > now_ms - _DAY_MS]
        messages = Counter(r.message[:100] for _, r in reports)

        return ErrorSummary(
            total_errors=len(reports),
            recent_errors=len(recent),
            daily_errors=len(daily),
            error_rate=round(len(daily) / len(reports) * 100, 2),
            severity_distribution=dict(Counter(r.severity for _, r in reports)),
            type_distribution=dict(Counter(r.type for _, r in reports)),
            top_errors=[
                ErrorCount(message=message, count=count)
                for message, count in messages.most_common(10)
            ],
            last_error_time=reports[0][0],
            recent_sample=[
                ErrorSample(
                    id=r.id,
                    type=r.type,
                    severity=r.severity,
                    message=r.message[:100],
                    path=r.page.path,
                    received_at=at,
                )
                for at, r in recent[:5]
            ],
        )

    async def performance_summary(self) -> PerformanceSummary:
        entries = await self._entries(_PERFORMANCE_KEY)
        if not entries:
            return PerformanceSummary()

        samples = []
        for entry in entries[:10]:
            report = PerformanceReport.model_validate(entry["report"])
            samples.append(
                PerformanceSample(
                    received_at=entry["receivedAt"],
                    path=report.path,
                    device_type=report.device_type,
                    consent_level=report.consent_level,
                    vitals=len(report.vitals),
                )
            )
        return PerformanceSummary(
            total_reports=len(entries),
            recent_reports=samples,
            last_updated=entries[0]["receivedAt"],
        )

    async def vital_stats(self) -> dict[str, VitalStats]:
        values: dict[str, list[float]] = {}
        for entry in await self._entries(_PERFORMANCE_KEY):
            for vital in PerformanceReport.model_validate(entry["report"]).vitals:
                values.setdefault(vital.name, []).append(vital.value)

        stats = {}
        for name in VITAL_THRESHOLDS:
            samples = values.get(name)
            if not samples:
                continue
            p75 = percentile(samples, 0.75)
            stats[name] = VitalStats(
                name=name,
                samples=len(samples),
                average=round(sum(samples) / len(samples), 3),
                p75=p75,
                rating=rate_vital(name, p75).value,
                ratings=dict(Counter(rate_vital(name, v).value for v in samples)),
            )
        return stats
