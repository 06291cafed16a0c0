"""Analytics event factory.

Builds well-formed ``AnalyticsEvent`` values: fresh id, current timestamp,
the session's id, deep copies of page/user context, and the anonymization
flag derived from the consent level.

Construction is total: an unknown category or consent level is kept as-is
and left for ``validate_event`` to report. Only a failing random or clock
source aborts construction, as ``EventConstructionError``.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Mapping
from typing import Any

from app.exceptions import EventConstructionError
from app.logging_config import get_logger
from services.consent import ConsentLevel, anonymization_for
from services.event_models import AnalyticsEvent, EventCategory, PageContext, UserContext
from services.session_context import SessionContext

logger = get_logger(__name__)

DEFAULT_PAGE = PageContext(path="/", title="Unknown Page", url="/")
DEFAULT_USER = UserContext()


def _as_value(value: Any) -> Any:
    return value.value if isinstance(value, (EventCategory, ConsentLevel)) else value


def _clock_ms() -> int:
    return int(time.time() * 1000)


class EventFactory:
    """Creates analytics events for one session.

    Usage:
        factory = EventFactory(SessionContext())
        event = factory.create_event(EventCategory.PAGE_VIEW, "view", ConsentLevel.ANALYTICS)
    """

    def __init__(
        self,
        session: SessionContext,
        *,
        default_page: PageContext | None = None,
        default_user: UserContext | None = None,
        id_source: Callable[[], Any] = uuid.uuid4,
        clock: Callable[[], int] = _clock_ms,
    ) -> None:
        self.session = session
        self._default_page = default_page or DEFAULT_PAGE
        self._default_user = default_user or DEFAULT_USER
        self._id_source = id_source
        self._clock = clock

    def _new_id(self) -> str:
        try:
            return str(self._id_source())
        except (OSError, NotImplementedError) as exc:
            logger.error("event_id_source_failed", error=str(exc))
            raise EventConstructionError("Random source unavailable") from exc

    def now(self) -> int:
        """Current time in epoch milliseconds from the factory's clock."""
        try:
            return int(self._clock())
        except (OSError, OverflowError, ValueError) as exc:
            logger.error("event_clock_failed", error=str(exc))
            raise EventConstructionError("Clock unavailable") from exc

    def create_event(
        self,
        category: EventCategory | str,
        action: str,
        consent_level: ConsentLevel | str,
        *,
        label: str | None = None,
        value: float | None = None,
        page: PageContext | Mapping[str, Any] | None = None,
        user: UserContext | Mapping[str, Any] | None = None,
        user_id: str | None = None,
    ) -> AnalyticsEvent:
        """Build one event. Does not validate, transmit or persist it."""
        consent = _as_value(consent_level)
        return AnalyticsEvent(
            id=self._new_id(),
            timestamp=self.now(),
            session_id=self.session.current_id(),
            user_id=user_id,
            category=_as_value(category),
            action=action,
            label=label,
            value=value,
            page=self._copy_context(page, self._default_page, PageContext),
            user=self._copy_context(user, self._default_user, UserContext),
            consent_level=consent,
            anonymized=anonymization_for(consent),
        )

    def complete(
        self,
        raw: Mapping[str, Any],
        *,
        default_page: PageContext | None = None,
        default_user: UserContext | None = None,
    ) -> AnalyticsEvent:
        """Fill the gaps of a client-supplied event.

        Missing id, timestamp and session id are generated; missing page and
        user context fall back to the request-derived defaults. Inbound events
        are always stored anonymized. Raises pydantic's ``ValidationError``
        when a present field has the wrong type.
        """
        data = dict(raw)
        if not data.get("id"):
            data["id"] = self._new_id()
        if not data.get("timestamp"):
            data["timestamp"] = self.now()
        if not (data.get("sessionId") or data.get("session_id")):
            data["sessionId"] = self.session.current_id()
        if not data.get("page"):
            data["page"] = (default_page or self._default_page).model_copy(deep=True)
        if not data.get("user"):
            data["user"] = (default_user or self._default_user).model_copy(deep=True)
        data["anonymized"] = True
        return AnalyticsEvent.model_validate(data)

    @staticmethod
    def _copy_context(context: Any, default: Any, model: type) -> Any:
        if context is None:
            return default.model_copy(deep=True)
        if isinstance(context, Mapping):
            return model.model_validate(context)
        return context.model_copy(deep=True)
