"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi_pagination import add_pagination
from prometheus_client import make_asgi_app

from faxlink.config import get_settings
from faxlink.infra.logging_config import configure_logging, get_logger
from faxlink.routers import contexts_router, inbound_router

logger = get_logger("main")


def create_app(testing: bool = False) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.app_name)
    app.include_router(contexts_router.router)
    app.include_router(inbound_router.router)

    @app.get("/health", tags=["system"])
    def health() -> dict:
        return {"status": "ok", "environment": settings.environment}

    if not testing:
        app.mount("/metrics", make_asgi_app())

    add_pagination(app)
    logger.info("Starting %s (%s)", settings.app_name, settings.environment)
    return app


app = create_app()
