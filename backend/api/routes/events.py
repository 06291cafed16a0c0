"""Event ingestion endpoints.

POST /api/analytics/events       - Record a single analytics event
POST /api/analytics/events/batch - Record up to ``batch_max_events`` events
"""

from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import (
    do_not_track,
    json_body,
    rate_limit_events,
    request_page_context,
    request_user_context,
)
from app.config import get_settings
from app.dependencies import get_redis
from app.exceptions import (
    BatchError,
    EventStorageError,
    InsufficientConsentError,
    InvalidEventError,
)
from app.logging_config import get_logger
from app.metrics import BATCH_SIZE
from db.session import get_db_session
from gateway.session import SessionManager
from services.analytics_pipeline import AnalyticsPipeline
from services.event_factory import EventFactory
from services.event_ingest import EventIngestor
from services.event_models import EventBatch
from services.event_store import EventStore

logger = get_logger(__name__)
router = APIRouter()


async def _build_ingestor(
    request: Request,
    redis: aioredis.Redis,
    db: AsyncSession,
    dnt: bool,
    session_id: str | None,
) -> tuple[EventIngestor, SessionManager]:
    settings = get_settings()
    sessions = SessionManager(redis)
    session = await sessions.get_or_create(session_id)
    factory = EventFactory(
        session,
        default_page=request_page_context(request),
        default_user=request_user_context(request),
    )
    ingestor = EventIngestor(
        factory,
        EventStore(redis),
        pipeline=AnalyticsPipeline(),
        db_session=db,
        do_not_track=dnt,
        sample_rate=settings.sample_rate,
    )
    return ingestor, sessions


def _session_headers(response: Response, session_id: str) -> None:
    response.headers["X-Session-ID"] = session_id


@router.post("/events", status_code=201)
async def track_event(
    request: Request,
    response: Response,
    body: Any = Depends(json_body),
    redis: aioredis.Redis = Depends(get_redis),
    db: AsyncSession = Depends(get_db_session),
    dnt: bool = Depends(do_not_track),
    x_session_id: str | None = Header(None),
    _rate_limit: None = Depends(rate_limit_events),
) -> dict[str, Any]:
    """Validate and record one analytics event.

    Missing id, timestamp and session id are filled server-side. Events whose
    consent level is below their category's minimum are refused with 403.
    """
    ingestor, sessions = await _build_ingestor(request, redis, db, dnt, x_session_id)
    outcome = await ingestor.ingest(body)

    if outcome.reason == "invalid":
        raise InvalidEventError(outcome.errors)
    if outcome.reason == "consent":
        raise InsufficientConsentError(
            required=outcome.required_consent or "analytics",
            provided=outcome.provided_consent or "",
        )
    if outcome.reason == "storage":
        raise EventStorageError()

    await sessions.save(ingestor.factory.session)
    _session_headers(response, ingestor.factory.session.session_id)
    return {
        "success": True,
        "event_id": outcome.event_id,
        "message": "Event recorded successfully",
    }


@router.post("/events/batch")
async def track_event_batch(
    request: Request,
    body: Any = Depends(json_body),
    redis: aioredis.Redis = Depends(get_redis),
    db: AsyncSession = Depends(get_db_session),
    dnt: bool = Depends(do_not_track),
    x_session_id: str | None = Header(None),
    _rate_limit: None = Depends(rate_limit_events),
) -> JSONResponse:
    """Record a batch of events with per-event results.

    201 when every event is accepted, 207 on partial success, 400 when none is.
    """
    settings = get_settings()
    if not isinstance(body, dict) or "events" not in body:
        raise BatchError(
            "INVALID_REQUEST_BODY",
            "Invalid request body. Expected { events: AnalyticsEvent[] }",
        )
    try:
        events = EventBatch.model_validate(body).events
    except PydanticValidationError as exc:
        raise BatchError("INVALID_EVENTS_FORMAT", "Events must be an array") from exc
    if not events:
        raise BatchError("EMPTY_BATCH", "Batch must contain at least one event")
    if len(events) > settings.batch_max_events:
        raise BatchError(
            "BATCH_SIZE_EXCEEDED",
            f"Batch size exceeds maximum of {settings.batch_max_events} events",
            details={"provided": len(events), "maximum": settings.batch_max_events},
        )

    BATCH_SIZE.observe(len(events))
    ingestor, sessions = await _build_ingestor(request, redis, db, dnt, x_session_id)
    default_page = request_page_context(request)
    default_user = request_user_context(request)

    processed = 0
    errors: list[str] = []
    event_ids: list[str] = []
    for index, raw in enumerate(events):
        outcome = await ingestor.ingest(
            raw, default_page=default_page, default_user=default_user
        )
        if outcome.accepted:
            processed += 1
            event_ids.append(outcome.event_id or "")
        else:
            errors.append(f"Event {index}: {', '.join(outcome.errors)}")

    failed = len(events) - processed
    if processed and failed:
        status_code, message = 207, "Batch partially processed"
    elif processed:
        status_code, message = 201, "Batch processed successfully"
    else:
        status_code, message = 400, "Batch processing failed"

    logger.info("event_batch_processed", processed=processed, failed=failed)

    if processed:
        await sessions.save(ingestor.factory.session)

    response = JSONResponse(
        status_code=status_code,
        content={
            "success": processed > 0,
            "processed": processed,
            "failed": failed,
            "errors": errors,
            "event_ids": event_ids,
            "message": message,
        },
    )
    _session_headers(response, ingestor.factory.session.session_id)
    return response
