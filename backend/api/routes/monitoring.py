"""Client error and performance reporting endpoints.

POST /api/analytics/errors              - Report a client-side error
GET  /api/analytics/errors              - Error summary (admin only)
POST /api/analytics/performance         - Report Core Web Vitals for a page load
GET  /api/analytics/performance         - Recent performance reports (admin only)
GET  /api/analytics/performance/metrics - Per-vital distribution (admin only)

Reports are accepted only when the visitor's stored consent (``consent_id``
cookie) is at least ``analytics``.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from api.deps import (
    do_not_track,
    json_body,
    rate_limit_events,
    require_admin,
    stored_consent_level,
)
from app.dependencies import get_redis
from app.exceptions import EventStorageError, MonitoringConsentError, ReportValidationError
from app.logging_config import get_logger
from app.metrics import CLIENT_ERRORS_REPORTED, WEB_VITALS_REPORTED
from services.consent import ConsentLevel, is_permitted
from services.context_builders import detect_device_type
from services.error_reports import sanitize_error_report, validate_error_report
from services.event_models import ValidationResult
from services.monitoring_store import MonitoringStore
from services.performance_reports import build_performance_report, validate_performance_report

logger = get_logger(__name__)
router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _require_report_consent(consent_level: str, subject: str) -> None:
    if consent_level == ConsentLevel.NONE.value:
        raise MonitoringConsentError(
            "CONSENT_REQUIRED", f"{subject} requires consent", consent_level
        )
    if not is_permitted(ConsentLevel.ANALYTICS, consent_level):
        raise MonitoringConsentError(
            "INSUFFICIENT_CONSENT", f"{subject} requires analytics consent", consent_level
        )


@router.post("/errors", status_code=201)
async def report_error(
    request: Request,
    body: Any = Depends(json_body),
    redis: aioredis.Redis = Depends(get_redis),
    consent_level: str = Depends(stored_consent_level),
    dnt: bool = Depends(do_not_track),
    _rate_limit: None = Depends(rate_limit_events),
) -> JSONResponse:
    """Validate, sanitize and store one client error report."""
    _require_report_consent(consent_level, "Error tracking")

    now = _now_ms()
    validation = validate_error_report(body, now)
    if not validation.valid:
        raise ReportValidationError(validation.errors)

    try:
        report = sanitize_error_report(
            body,
            consent_level,
            report_id=str(uuid.uuid4()),
            now_ms=now,
            header_user_agent=request.headers.get("user-agent"),
        )
    except PydanticValidationError as exc:
        raise ReportValidationError(ValidationResult.from_pydantic(exc).errors) from exc

    stored = False
    if not dnt:
        try:
            await MonitoringStore(redis).record_error(report, now)
        except RedisError as exc:
            logger.exception("error_report_store_failed", error_id=report.id)
            raise EventStorageError() from exc
        stored = True

    CLIENT_ERRORS_REPORTED.labels(type=report.type, severity=report.severity).inc()
    log = logger.error if report.urgent else logger.info
    log(
        "client_error_reported",
        error_id=report.id,
        error_type=report.type,
        severity=report.severity,
        error_message=report.message,
        path=report.page.path,
    )

    return JSONResponse(
        status_code=201,
        content={
            "success": True,
            "error_id": report.id,
            "message": "Error event collected successfully",
            "consent_level": consent_level,
            "stored": stored,
        },
        headers={"X-Error-Tracked": "true"},
    )


@router.get("/errors", dependencies=[Depends(require_admin)])
async def get_error_summary(redis: aioredis.Redis = Depends(get_redis)) -> dict[str, Any]:
    summary = await MonitoringStore(redis).error_summary(_now_ms())
    return summary.model_dump(mode="json")


@router.post("/performance")
async def report_performance(
    request: Request,
    body: Any = Depends(json_body),
    redis: aioredis.Redis = Depends(get_redis),
    consent_level: str = Depends(stored_consent_level),
    dnt: bool = Depends(do_not_track),
    _rate_limit: None = Depends(rate_limit_events),
) -> JSONResponse:
    """Store one page load's Core Web Vitals, rated server-side."""
    _require_report_consent(consent_level, "Performance monitoring")

    now = _now_ms()
    validation = validate_performance_report(body, now)
    if not validation.valid:
        raise ReportValidationError(validation.errors, status_code=422)

    try:
        report = build_performance_report(
            body,
            consent_level,
            device_type=detect_device_type(request.headers.get("user-agent")).value,
        )
    except PydanticValidationError as exc:
        raise ReportValidationError(
            ValidationResult.from_pydantic(exc).errors, status_code=422
        ) from exc

    stored = False
    if not dnt:
        try:
            await MonitoringStore(redis).record_performance(report, now)
        except RedisError as exc:
            logger.exception("performance_report_store_failed")
            raise EventStorageError() from exc
        stored = True

    for vital in report.vitals:
        WEB_VITALS_REPORTED.labels(name=vital.name, rating=vital.rating).inc()
    logger.info("performance_reported", path=report.path, vitals=len(report.vitals))

    return JSONResponse(
        status_code=200,
        content={
            "success": True,
            "message": "Performance metrics collected successfully",
            "consent_level": consent_level,
            "vitals": {vital.name: vital.rating for vital in report.vitals},
            "stored": stored,
        },
        headers={"X-Performance-Accepted": "true"},
    )


@router.get("/performance", dependencies=[Depends(require_admin)])
async def get_performance_summary(redis: aioredis.Redis = Depends(get_redis)) -> dict[str, Any]:
    summary = await MonitoringStore(redis).performance_summary()
    return summary.model_dump(mode="json")


@router.get("/performance/metrics", dependencies=[Depends(require_admin)])
async def get_vital_metrics(redis: aioredis.Redis = Depends(get_redis)) -> dict[str, Any]:
    """p75, average and rating breakdown for every vital with samples."""
    stats = await MonitoringStore(redis).vital_stats()
    return {
        "vitals": {name: item.model_dump(mode="json") for name, item in stats.items()},
    }
