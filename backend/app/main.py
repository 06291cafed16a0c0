"""FastAPI Application Factory.

Wires the analytics API, privacy headers, error rendering, health checks
and the Prometheus endpoint into one application.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
import structlog
from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from app.config import Settings, get_settings
from app.dependencies import close_redis, get_redis, init_redis
from app.exceptions import AnalyticsBaseError
from app.logging_config import get_logger, setup_logging
from app.metrics import APP_INFO, HTTP_REQUEST_DURATION, HTTP_REQUESTS_TOTAL
from db.session import close_db, init_db
from gateway.health import HealthMonitor
from services.consent import respects_do_not_track

logger = get_logger(__name__)

PRIVACY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store",
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Connect Redis and PostgreSQL on startup, release them on shutdown."""
    settings = get_settings()

    setup_logging()
    APP_INFO.info(
        {
            "version": settings.app_version,
            "environment": settings.environment.value,
        }
    )
    logger.info(
        "application_starting",
        version=settings.app_version,
        environment=settings.environment.value,
        respect_dnt=settings.respect_dnt,
        sample_rate=settings.sample_rate,
    )

    await init_redis()
    logger.info("redis_connected")
    await init_db()
    logger.info("database_connected")

    yield

    logger.info("application_shutting_down")
    await close_redis()
    await close_db()
    logger.info("application_stopped")


def _register_middleware(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Session-ID",
            "X-DNT-Compliant",
            "X-Error-Tracked",
            "X-Performance-Accepted",
        ],
    )

    @app.middleware("http")
    async def request_middleware(request: Request, call_next) -> Response:
        """Request ID, timing, privacy headers and metrics for every response."""
        request_id = str(uuid.uuid4())
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response: Response = await call_next(request)

        duration = time.perf_counter() - start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.4f}"
        response.headers["X-Privacy-Policy-Version"] = settings.privacy_policy_version
        for header, value in PRIVACY_HEADERS.items():
            response.headers.setdefault(header, value)
        if settings.respect_dnt and respects_do_not_track(request.headers.get("dnt")):
            response.headers["X-DNT-Compliant"] = "1"

        # Route template keeps consent ids out of metric labels
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        HTTP_REQUESTS_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        HTTP_REQUEST_DURATION.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AnalyticsBaseError)
    async def analytics_error_handler(
        _request: Request, exc: AnalyticsBaseError
    ) -> JSONResponse:
        logger.warning(
            "request_rejected",
            code=exc.code,
            status_code=exc.status_code,
        )
        headers = None
        if isinstance(exc.details.get("retry_after_seconds"), int):
            headers = {"Retry-After": str(exc.details["retry_after_seconds"])}
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions without leaking internals."""
        logger.exception("unhandled_error", error_type=type(exc).__name__)
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred.",
                }
            },
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Privacy-first event tracking and consent service for a portfolio site",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    _register_middleware(app, settings)
    _register_exception_handlers(app)

    if settings.metrics_enabled:
        app.mount("/metrics", make_asgi_app())

    from api.router import analytics_router

    app.include_router(analytics_router, prefix="/api/analytics")

    @app.get("/health", tags=["System"])
    async def health_check() -> dict:
        """Liveness: the process is up."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment.value,
        }

    @app.get("/health/ready", tags=["System"])
    async def readiness_check(redis: aioredis.Redis = Depends(get_redis)) -> JSONResponse:
        """Readiness: Redis and PostgreSQL reachable."""
        result = await HealthMonitor(redis).check_all()
        status_code = 200 if result["status"] == "healthy" else 503
        return JSONResponse(status_code=status_code, content=result)

    return app


# Application instance
app = create_app()
