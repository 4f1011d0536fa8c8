"""FastAPI application entry point with lifespan management.

Startup: configure JSON logging and log the effective probe configuration.
Shutdown: nothing to drain; every batch stops its own core before returning.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from nodeprobe.config.settings import ProbeSettings
from nodeprobe.logging_config import configure_logging
from nodeprobe.middleware.auth import ServiceKeyAuthMiddleware
from nodeprobe.middleware.error_handler import register_error_handlers
from nodeprobe.middleware.request_id import RequestIdMiddleware
from nodeprobe.routers.check import create_check_router
from nodeprobe.routers.health import create_health_router
from nodeprobe.services.orchestrator import BatchOrchestrator

logger = logging.getLogger(__name__)


def create_app(
    settings: ProbeSettings | None = None,
    orchestrator: BatchOrchestrator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    *settings* default to the ``NODEPROBE_`` environment; *orchestrator* is
    built from them when not injected.
    """
    settings = settings or ProbeSettings()
    orchestrator = orchestrator or BatchOrchestrator(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        logger.info(
            "Starting probe service on port %d (core=%s, targets=%s, policy=%s)",
            settings.port,
            settings.core_api_url,
            ",".join(settings.targets),
            settings.decision_policy.value,
        )
        yield
        logger.info("Probe service shut down")

    app = FastAPI(
        title="Node Probe Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    register_error_handlers(app)

    # Starlette applies middleware in reverse order of add_middleware calls
    if settings.service_key:
        app.add_middleware(ServiceKeyAuthMiddleware, service_key=settings.service_key)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(create_health_router(orchestrator=orchestrator))
    app.include_router(create_check_router(orchestrator=orchestrator))
    app.state.orchestrator = orchestrator

    return app


app = create_app()
