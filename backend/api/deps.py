"""Shared API dependencies.

Rate limiting, admin authentication, JSON body parsing and per-request
service construction as injectable FastAPI dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

import redis.asyncio as aioredis
from fastapi import Cookie, Depends, Header, Request

from app.config import get_settings
from app.dependencies import consent_rate_limiter, events_rate_limiter, get_redis
from app.exceptions import (
    ForbiddenError,
    InvalidContentTypeError,
    InvalidJSONError,
    UnauthorizedError,
)
from app.logging_config import get_logger
from services.consent import ConsentLevel, is_consent_active, respects_do_not_track
from services.consent_store import ConsentStore
from services.context_builders import build_user_context
from services.event_models import PageContext, UserContext

logger = get_logger(__name__)


def client_ip_hash(request: Request) -> str:
    """Anonymized client identifier (truncated SHA-256 of the IP)."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
    else:
        client_ip = request.client.host if request.client else "unknown"
    return hashlib.sha256(client_ip.encode()).hexdigest()[:16]


async def rate_limit_events(
    request: Request,
    redis: aioredis.Redis = Depends(get_redis),
) -> None:
    """Per-IP limit for event ingestion."""
    await events_rate_limiter.check(client_ip_hash(request), redis)


async def rate_limit_consent(
    request: Request,
    redis: aioredis.Redis = Depends(get_redis),
) -> None:
    """Per-IP limit for consent updates."""
    await consent_rate_limiter.check(client_ip_hash(request), redis)


async def json_body(request: Request) -> Any:
    """Decode a JSON request body, enforcing the content type."""
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type:
        raise InvalidContentTypeError()
    raw = await request.body()
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise InvalidJSONError() from exc


def do_not_track(dnt: str | None = Header(None)) -> bool:
    """Whether the client asked not to be tracked and the site honours it."""
    return get_settings().respect_dnt and respects_do_not_track(dnt)


async def stored_consent_level(
    redis: aioredis.Redis = Depends(get_redis),
    consent_id: str | None = Cookie(None),
) -> str:
    """Level of the visitor's active consent record, ``"none"`` without one."""
    if not consent_id:
        return ConsentLevel.NONE.value
    record = await ConsentStore(redis).get(consent_id)
    if record is None or not is_consent_active(record):
        return ConsentLevel.NONE.value
    return record.level


def request_page_context(request: Request) -> PageContext:
    """Page context for events that arrive without one."""
    return PageContext(
        path="/",
        title="Unknown Page",
        url=str(request.url),
        referrer=request.headers.get("referer"),
    )


def request_user_context(request: Request) -> UserContext:
    """User context inferred from request headers."""
    return build_user_context(
        request.headers.get("user-agent"),
        request.headers.get("accept-language"),
    )


def require_admin(authorization: str | None = Header(None)) -> None:
    """Bearer-token guard for the dashboard."""
    if not authorization:
        raise UnauthorizedError()

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise UnauthorizedError()

    expected = get_settings().admin_token
    if expected is None:
        raise ForbiddenError()
    if not hmac.compare_digest(token, expected.get_secret_value()):
        logger.warning("dashboard_auth_rejected")
        raise UnauthorizedError()
