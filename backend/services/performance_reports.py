"""Core Web Vitals reports.

Clients post one report per page load with whatever vitals the browser
measured. Ratings are recomputed here from the published thresholds rather
than trusted from the client, and the navigation timing keeps only relative
durations.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import Field

from services.event_models import ValidationResult, WireModel


class WebVital(str, Enum):
    LCP = "lcp"
    FID = "fid"
    INP = "inp"
    CLS = "cls"
    FCP = "fcp"
    TTFB = "ttfb"


class VitalRating(str, Enum):
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs-improvement"
    POOR = "poor"


# (good, needs-improvement) upper bounds; CLS is unitless, the rest are ms.
VITAL_THRESHOLDS: dict[str, tuple[float, float]] = {
    WebVital.LCP.value: (2500, 4000),
    WebVital.FID.value: (100, 300),
    WebVital.INP.value: (200, 500),
    WebVital.CLS.value: (0.1, 0.25),
    WebVital.FCP.value: (1800, 3000),
    WebVital.TTFB.value: (800, 1800),
}

MAX_REPORT_AGE_MS = 24 * 60 * 60 * 1000
MAX_CLOCK_SKEW_MS = 60 * 1000

# Absolute request/response marks are dropped; only durations are kept.
_ABSOLUTE_TIMING_KEYS = frozenset({"requestStart", "responseStart", "responseEnd"})


def rate_vital(name: str, value: float) -> VitalRating:
    good, needs_improvement = VITAL_THRESHOLDS[name]
    if value <= good:
        return VitalRating.GOOD
    if value <= needs_improvement:
        return VitalRating.NEEDS_IMPROVEMENT
    return VitalRating.POOR


class VitalSample(WireModel):
    name: str
    value: float
    rating: str


class PerformanceReport(WireModel):
    """A sanitized performance report, as stored."""

    timestamp: int
    path: str = "/"
    device_type: str = "unknown"
    vitals: list[VitalSample] = Field(default_factory=list)
    navigation_timing: dict[str, float] | None = None
    consent_level: str


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_performance_report(data: Any, now_ms: int) -> ValidationResult:
    """Check a raw performance report. Every failed check adds one message."""
    if not isinstance(data, Mapping):
        return ValidationResult.from_errors(["Performance data must be an object"])

    errors: list[str] = []

    timestamp = data.get("timestamp")
    if not _is_number(timestamp) or timestamp <= 0:
        errors.append("Timestamp must be a number")
    elif timestamp > now_ms + MAX_CLOCK_SKEW_MS:
        errors.append("Timestamp appears to be in the future")
    elif timestamp < now_ms - MAX_REPORT_AGE_MS:
        errors.append("Performance data appears too old")

    vitals = data.get("coreWebVitals")
    if vitals is not None:
        if not isinstance(vitals, Mapping):
            errors.append("coreWebVitals must be an object")
        else:
            for name, metric in vitals.items():
                if name.lower() not in VITAL_THRESHOLDS:
                    errors.append(f"Unknown Core Web Vital: {name}")
                elif not isinstance(metric, Mapping):
                    errors.append(f"Invalid value for Core Web Vital: {name}")
                elif not _is_number(metric.get("value")) or metric["value"] < 0:
                    errors.append(f"Invalid value for Core Web Vital: {name}")

    timing = data.get("navigationTiming")
    if timing is not None:
        if not isinstance(timing, Mapping) or not all(_is_number(v) for v in timing.values()):
            errors.append("navigationTiming must be an object of numbers")

    return ValidationResult.from_errors(errors)


def _sanitize_timing(timing: Mapping[str, float]) -> dict[str, float]:
    kept = {k: float(v) for k, v in timing.items() if k not in _ABSOLUTE_TIMING_KEYS}
    if "fetchStart" in kept and "loadEventEnd" in kept:
        kept["totalDuration"] = kept["loadEventEnd"] - kept["fetchStart"]
    return kept


def build_performance_report(
    data: Mapping[str, Any],
    consent_level: str,
    *,
    device_type: str = "unknown",
) -> PerformanceReport:
    """Build the stored report from a validated raw one."""
    vitals = [
        VitalSample(
            name=name.lower(),
            value=metric["value"],
            rating=rate_vital(name.lower(), metric["value"]).value,
        )
        for name, metric in (data.get("coreWebVitals") or {}).items()
    ]

    page = data.get("page")
    path = page.get("path") if isinstance(page, Mapping) else None
    timing = data.get("navigationTiming")

    return PerformanceReport(
        timestamp=data["timestamp"],
        path=path.split("?", 1)[0] if isinstance(path, str) and path else "/",
        device_type=device_type,
        vitals=vitals,
        navigation_timing=_sanitize_timing(timing) if timing else None,
        consent_level=consent_level,
    )
