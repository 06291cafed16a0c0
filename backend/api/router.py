"""Analytics API router aggregation."""

from __future__ import annotations

from fastapi import APIRouter

from api.routes.consent import router as consent_router
from api.routes.dashboard import router as dashboard_router
from api.routes.events import router as events_router
from api.routes.monitoring import router as monitoring_router

analytics_router = APIRouter()

analytics_router.include_router(events_router, tags=["Events"])
analytics_router.include_router(consent_router, tags=["Consent"])
analytics_router.include_router(monitoring_router, tags=["Monitoring"])
analytics_router.include_router(dashboard_router, tags=["Dashboard"])
