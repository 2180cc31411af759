"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.cache import close_redis
from backend.app.core.config import settings
from backend.app.core.database import async_session_factory, close_db, engine, init_db
from backend.app.core.errors import register_error_handlers
from backend.app.core.health import HealthStatus, run_health_check
from backend.app.core.logging_config import get_logger, setup_logging
from backend.app.core.middleware import RequestLoggingMiddleware

# ── API routers ──
from backend.app.api.deps import Services, build_services
from backend.app.api.v1.contacts import router as contacts_router
from backend.app.api.v1.notifications import router as notifications_router
from backend.app.api.v1.zones import router as zones_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the application.

    *services* replaces the collaborators normally wired from settings at
    startup; tests use it to inject fake SMS providers or in-memory stores.
    """

    # ── Application lifespan (startup / shutdown) ──

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        await init_db(engine)
        app.state.services = services or build_services(settings, async_session_factory)
        yield
        # Let queued notifications finish before closing connections
        logger.info("Shutting down %s", settings.APP_NAME)
        app.state.services.shutdown(wait=True)
        await close_redis()
        await close_db(engine)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Community hazard reporting. Users report dangerous zones, "
            "moderators approve, reject or clear them, and every registered "
            "contact is alerted by SMS when a zone is approved or marked safe. "
            "Also classifies a live position as safe / warning / danger "
            "relative to approved zones."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Middleware stack (outermost first) ──

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app)

    # ── Register routers ──
    app.include_router(zones_router)
    app.include_router(contacts_router)
    app.include_router(notifications_router)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "modules": [
                "zone-reporting",
                "zone-moderation",
                "sms-notification",
                "proximity-risk",
            ],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Deep health probe — checks all subsystems."""
        report = await run_health_check(app.state.services.provider, engine)
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness():
        """Kubernetes readiness probe — can we serve traffic?"""
        report = await run_health_check(app.state.services.provider, engine)
        if report.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


# ── Create application ──

app = create_app()
