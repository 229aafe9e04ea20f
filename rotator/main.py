"""FastAPI application factory."""

from fastapi import FastAPI

from rotator.config import configure_structlog, get_settings
from rotator.error_handlers import register_exception_handlers
from rotator.routers import health, rotations


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_structlog(settings)

    app = FastAPI(title=settings.app.service)
    register_exception_handlers(app, environment=settings.app.environment)
    app.include_router(rotations.router)
    app.include_router(health.router)
    return app
