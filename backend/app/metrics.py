"""Prometheus metrics for monitoring.

Tracks request latency, event intake outcomes and consent changes.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram, Info

# Application info
APP_INFO = Info("pa_app", "Portfolio Analytics application info")

# HTTP metrics
HTTP_REQUESTS_TOTAL = Counter(
    "pa_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION = Histogram(
    "pa_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

# Event intake
EVENTS_ACCEPTED = Counter(
    "pa_events_accepted_total",
    "Analytics events accepted",
    ["category", "consent_level"],
)

EVENTS_REJECTED = Counter(
    "pa_events_rejected_total",
    "Analytics events rejected",
    ["reason"],
)

EVENTS_SKIPPED_DNT = Counter(
    "pa_events_skipped_dnt_total",
    "Events accepted but not stored because of Do Not Track",
)

BATCH_SIZE = Histogram(
    "pa_event_batch_size",
    "Number of events per batch request",
    buckets=(1, 5, 10, 25, 50, 100),
)

# Client error and performance reports
CLIENT_ERRORS_REPORTED = Counter(
    "pa_client_errors_reported_total",
    "Client error reports accepted",
    ["type", "severity"],
)

WEB_VITALS_REPORTED = Counter(
    "pa_web_vitals_reported_total",
    "Core Web Vitals samples accepted",
    ["name", "rating"],
)

# Consent
CONSENT_CHANGES = Counter(
    "pa_consent_changes_total",
    "Consent records created",
    ["level", "method"],
)

SESSIONS_STARTED = Counter(
    "pa_sessions_started_total",
    "Analytics sessions written for the first time",
)

# Rate limiting
RATE_LIMIT_HITS = Counter(
    "pa_rate_limit_hits_total",
    "Total rate limit hits",
    ["endpoint", "limit_type"],
)
