"""Explicit analytics session handle.

Owns the session id that the event factory stamps on every event, along
with the session's start time, activity clock and page view counter.
Callers pass one ``SessionContext`` per visitor session; nothing is kept in
module-level state.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from typing import Any

DEFAULT_TIMEOUT_SECONDS = 30 * 60


def _clock_ms() -> int:
    return int(time.time() * 1000)


class SessionContext:
    """A visitor session. Idle longer than ``timeout_seconds`` rotates the id."""

    def __init__(
        self,
        session_id: str | None = None,
        *,
        started_at: int | None = None,
        last_activity: int | None = None,
        page_views: int = 0,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], int] = _clock_ms,
    ) -> None:
        self._clock = clock
        now = clock()
        self.session_id = session_id or str(uuid.uuid4())
        self.started_at = started_at if started_at is not None else now
        self.last_activity = last_activity if last_activity is not None else now
        self.page_views = page_views
        self.timeout_seconds = timeout_seconds

    def is_expired(self, now_ms: int | None = None) -> bool:
        now = now_ms if now_ms is not None else self._clock()
        return now - self.last_activity > self.timeout_seconds * 1000

    def current_id(self) -> str:
        """Session id for an event happening now; renews an idle session."""
        now = self._clock()
        if self.is_expired(now):
            self.session_id = str(uuid.uuid4())
            self.started_at = now
            self.page_views = 0
        self.last_activity = now
        return self.session_id

    def record_page_view(self) -> int:
        self.current_id()
        self.page_views += 1
        return self.page_views

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at,
            "last_activity": self.last_activity,
            "page_views": self.page_views,
            "timeout_seconds": self.timeout_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> SessionContext:
        return cls(
            data["session_id"],
            started_at=data.get("started_at"),
            last_activity=data.get("last_activity"),
            page_views=data.get("page_views", 0),
            timeout_seconds=data.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
            **kwargs,
        )
