"""Analytics session management.

Persists ``SessionContext`` state in Redis between requests, keyed by the
session id the client echoes back in ``X-Session-ID``. The Redis TTL equals
the session timeout, so an idle session simply disappears.

PRIVACY: sessions hold counters and timestamps only, never visitor data.
"""

from __future__ import annotations

import json
from typing import Any

from app.config import get_settings
from app.logging_config import get_logger
from app.metrics import SESSIONS_STARTED
from services.session_context import SessionContext

logger = get_logger(__name__)


class SessionManager:
    """Redis-backed store for analytics sessions."""

    PREFIX = "analytics_session:"

    def __init__(self, redis: Any) -> None:
        self.redis = redis
        self.settings = get_settings()

    def _key(self, session_id: str) -> str:
        return f"{self.PREFIX}{session_id}"

    async def get_or_create(self, session_id: str | None) -> SessionContext:
        """Load the session, or start a new unsaved one if unknown or expired."""
        if session_id:
            data = await self.redis.get(self._key(session_id))
            if data is not None:
                if isinstance(data, bytes):
                    data = data.decode()
                return SessionContext.from_dict(json.loads(data))

        return SessionContext(timeout_seconds=self.settings.session_timeout_seconds)

    async def save(self, session: SessionContext) -> None:
        """Write the session back and restart its TTL.

        A session counts as started the first time it is written, so requests
        that are rejected before saving never show up in the metric.
        """
        key = self._key(session.session_id)
        payload = json.dumps(session.to_dict())
        created = await self.redis.set(key, payload, ex=session.timeout_seconds, nx=True)
        if created:
            SESSIONS_STARTED.inc()
            logger.info("session_started", session_id=session.session_id)
            return
        await self.redis.set(key, payload, ex=session.timeout_seconds)
