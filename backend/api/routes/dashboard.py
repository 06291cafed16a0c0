"""Dashboard endpoint.

GET /api/analytics/dashboard?period=day|week|month|year - Aggregated stats (admin only)
"""

from __future__ import annotations

from typing import Any, Literal

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Query

from api.deps import require_admin
from app.dependencies import get_redis
from services.event_store import EventStore

router = APIRouter()

PERIOD_DAYS: dict[str, int] = {"day": 1, "week": 7, "month": 30, "year": 365}


@router.get("/dashboard", dependencies=[Depends(require_admin)])
async def get_dashboard(
    period: Literal["day", "week", "month", "year"] = Query("week"),
    redis: aioredis.Redis = Depends(get_redis),
) -> dict[str, Any]:
    """Summary, top pages and per-category counts for the period."""
    summary = await EventStore(redis).summary(PERIOD_DAYS[period])
    return {"period": period, **summary.model_dump(mode="json")}
