"""Consent endpoints.

POST   /api/analytics/consent                    - Record a consent choice
GET    /api/analytics/consent/{consent_id}         - Current consent record
GET    /api/analytics/consent/{consent_id}/history - Every version, oldest first
DELETE /api/analytics/consent/{consent_id}         - Withdraw consent
"""

from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, Cookie, Depends, Request, Response
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import client_ip_hash, json_body, rate_limit_consent
from app.config import get_settings
from app.dependencies import get_redis
from app.exceptions import ConsentNotFoundError, InvalidConsentError
from app.logging_config import get_logger
from app.metrics import CONSENT_CHANGES
from db.session import get_db_session
from services.analytics_pipeline import AnalyticsPipeline
from services.consent import (
    CONSENT_LEVEL_VALUES,
    CONSENT_METHOD_VALUES,
    ConsentRecord,
    is_consent_active,
    update_consent,
    validate_consent_record,
    withdraw_consent,
)
from services.consent_store import ConsentStore
from services.event_models import ValidationResult

logger = get_logger(__name__)
router = APIRouter()

_COOKIE_NAME = "consent_id"


def _set_consent_cookie(response: Response, record: ConsentRecord) -> None:
    settings = get_settings()
    response.set_cookie(
        _COOKIE_NAME,
        record.consent_id,
        max_age=settings.consent_expiry_days * 86400,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


async def _persist(
    store: ConsentStore,
    db: AsyncSession,
    record: ConsentRecord,
) -> None:
    await store.save(record)
    await AnalyticsPipeline().record_consent(db, record)
    CONSENT_CHANGES.labels(level=record.level, method=record.method).inc()


@router.post("/consent")
async def record_consent(
    request: Request,
    response: Response,
    body: Any = Depends(json_body),
    redis: aioredis.Redis = Depends(get_redis),
    db: AsyncSession = Depends(get_db_session),
    consent_cookie: str | None = Cookie(None, alias=_COOKIE_NAME),
    _rate_limit: None = Depends(rate_limit_consent),
) -> dict[str, Any]:
    """Store a visitor's consent choice.

    An existing consent id (from the body or the ``consent_id`` cookie) keeps
    its identity; the new record becomes its latest version.
    """
    if not isinstance(body, dict) or "level" not in body or "method" not in body:
        raise InvalidConsentError(
            "MISSING_REQUIRED_FIELDS",
            "Missing required fields: level, method",
        )

    level, method = body["level"], body["method"]
    if not isinstance(level, str) or level not in CONSENT_LEVEL_VALUES:
        raise InvalidConsentError(
            "INVALID_CONSENT_LEVEL",
            f"Invalid consent level: {level}",
            details={"allowed": sorted(CONSENT_LEVEL_VALUES)},
        )
    if not isinstance(method, str) or method not in CONSENT_METHOD_VALUES:
        raise InvalidConsentError(
            "INVALID_CONSENT_METHOD",
            f"Invalid consent method: {method}",
            details={"allowed": sorted(CONSENT_METHOD_VALUES)},
        )

    granular = body.get("granularConsent", body.get("granular_consent"))
    if granular is not None and not isinstance(granular, dict):
        raise InvalidConsentError(
            "INVALID_CONSENT",
            "granularConsent must be an object",
        )

    settings = get_settings()
    store = ConsentStore(redis)
    consent_id = body.get("consentId") or consent_cookie
    previous = await store.get(consent_id) if isinstance(consent_id, str) else None

    try:
        record = update_consent(
            previous,
            level,
            granular,
            method,
            version=settings.privacy_policy_version,
            expiry_days=settings.consent_expiry_days,
            user_agent=request.headers.get("user-agent", ""),
            ip_hash=client_ip_hash(request) if settings.anonymize_ip else None,
        )
    except PydanticValidationError as exc:
        raise InvalidConsentError(
            "INVALID_CONSENT",
            "Consent record is invalid",
            details={"errors": ValidationResult.from_pydantic(exc).errors},
        ) from exc

    validation = validate_consent_record(record)
    if not validation.valid:
        raise InvalidConsentError(
            "INVALID_CONSENT",
            "Consent record is invalid",
            details={"errors": validation.errors},
        )

    await _persist(store, db, record)
    _set_consent_cookie(response, record)
    logger.info("consent_updated", consent_id=record.consent_id, level=record.level)

    return {"success": True, "consent": record.to_wire()}


@router.get("/consent/{consent_id}")
async def get_consent(
    consent_id: str,
    redis: aioredis.Redis = Depends(get_redis),
) -> dict[str, Any]:
    record = await ConsentStore(redis).get(consent_id)
    if record is None:
        raise ConsentNotFoundError()
    return {"consent": record.to_wire(), "active": is_consent_active(record)}


@router.get("/consent/{consent_id}/history")
async def get_consent_history(
    consent_id: str,
    redis: aioredis.Redis = Depends(get_redis),
) -> dict[str, Any]:
    history = await ConsentStore(redis).history(consent_id)
    if not history:
        raise ConsentNotFoundError()
    return {
        "consent_id": consent_id,
        "history": [record.to_wire() for record in history],
    }


@router.delete("/consent/{consent_id}")
async def revoke_consent(
    consent_id: str,
    response: Response,
    redis: aioredis.Redis = Depends(get_redis),
    db: AsyncSession = Depends(get_db_session),
    _rate_limit: None = Depends(rate_limit_consent),
) -> dict[str, Any]:
    """Withdraw consent; the record drops to level ``none``."""
    store = ConsentStore(redis)
    previous = await store.get(consent_id)
    if previous is None:
        raise ConsentNotFoundError()

    record = withdraw_consent(previous)
    await _persist(store, db, record)
    response.delete_cookie(_COOKIE_NAME)
    logger.info("consent_withdrawn", consent_id=record.consent_id)

    return {"success": True, "consent": record.to_wire()}
