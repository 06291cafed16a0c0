"""Redis-backed consent record storage.

The current record for a consent id is replaced on every change; each
version is also appended to an audit list that is never rewritten.
"""

from __future__ import annotations

from typing import Any

from app.config import get_settings
from app.logging_config import get_logger
from services.consent import ConsentRecord

logger = get_logger(__name__)

_CURRENT_PREFIX = "consent:"
_HISTORY_PREFIX = "consent_history:"


def _decode(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else value


class ConsentStore:
    """Current consent per id plus its append-only history."""

    def __init__(self, redis_client: Any) -> None:
        self._redis = redis_client
        self._ttl = get_settings().consent_expiry_days * 86400

    async def save(self, record: ConsentRecord) -> None:
        payload = record.model_dump_json(by_alias=True, exclude_none=True)
        pipe = self._redis.pipeline()
        pipe.setex(f"{_CURRENT_PREFIX}{record.consent_id}", self._ttl, payload)
        pipe.rpush(f"{_HISTORY_PREFIX}{record.consent_id}", payload)
        pipe.expire(f"{_HISTORY_PREFIX}{record.consent_id}", self._ttl)
        await pipe.execute()
        logger.info(
            "consent_saved",
            consent_id=record.consent_id,
            level=record.level,
            method=record.method,
        )

    async def get(self, consent_id: str) -> ConsentRecord | None:
        data = await self._redis.get(f"{_CURRENT_PREFIX}{consent_id}")
        if data is None:
            return None
        return ConsentRecord.model_validate_json(_decode(data))

    async def history(self, consent_id: str) -> list[ConsentRecord]:
        """All versions, oldest first."""
        raw = await self._redis.lrange(f"{_HISTORY_PREFIX}{consent_id}", 0, -1)
        return [ConsentRecord.model_validate_json(_decode(item)) for item in raw]
