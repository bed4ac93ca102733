"""FastAPI application entry point for the disaster response API."""

import logging
import sys

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, settings as default_settings
from errors import register_error_handlers
from services.container import build_services

# Structured logging: JSON for production, human-readable for local
if default_settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(title="Disaster Response API", version="1.0.0")
    app.state.services = build_services(settings)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.disasters import router as disasters_router
    from routes.feeds import router as feeds_router
    from routes.geocode import router as geocode_router
    from routes.health import router as health_router
    from routes.realtime import router as realtime_router
    from routes.reports import router as reports_router
    from routes.resources import router as resources_router

    app.include_router(health_router)
    app.include_router(disasters_router)
    app.include_router(reports_router)
    app.include_router(resources_router)
    app.include_router(feeds_router)
    app.include_router(geocode_router)
    app.include_router(realtime_router)

    @app.on_event("startup")
    async def _validate_config() -> None:
        missing = settings.validate()
        if missing:
            logger.warning("Missing env vars (running with mock/fallback services): %s", ", ".join(missing))

    @app.on_event("shutdown")
    async def _close_services() -> None:
        await app.state.services.aclose()

    return app


app = create_app()
