"""Main entry point for the Carbon Depict job queue service."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from depict_jobs import __version__
from depict_jobs.config import Settings, get_settings
from depict_jobs.lib.json_logger import configure_logging
from depict_jobs.queue.registry import QueueRegistry, create_registry
from depict_jobs.routes import admin, health

logger = logging.getLogger(__name__)


def create_app(registry: Optional[QueueRegistry] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the HTTP app.

    Args:
        registry: Pre-built registry (tests); built with a boot probe otherwise
        settings: Defaults to the environment settings
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the queues and start the workers alongside the HTTP server."""
        from depict_jobs.bridge import HttpNotificationBridge, attach_notification_bridge
        from depict_jobs.workers.email_worker import start_email_worker

        owns_registry = registry is None
        if owns_registry:
            configure_logging(settings)
        app.state.registry = registry if registry is not None else await create_registry(settings)
        bridge = None

        if settings.start_workers:
            start_email_worker(app.state.registry, settings)
            if settings.notification_webhook_url:
                bridge = HttpNotificationBridge(settings.notification_webhook_url, settings.service_token)
                attach_notification_bridge(app.state.registry, bridge)
            logger.info("Background workers started")

        yield

        # Shutdown: let in-flight jobs finish within the grace period
        if owns_registry or settings.start_workers:
            await app.state.registry.close(settings.shutdown_grace_ms)
        if bridge is not None:
            await bridge.close()
        logger.info("Background workers stopped")

    app = FastAPI(
        title="Carbon Depict Jobs",
        description="Background job queues, workers and queue administration",
        version=__version__,
        lifespan=lifespan,
    )
    if registry is not None:
        app.state.registry = registry

    # CORS middleware - origins from environment variable
    cors_origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(admin.router, prefix="/admin", tags=["Queue Admin"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "Carbon Depict Jobs",
            "version": __version__,
            "status": "running",
        }

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "depict_jobs.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
    )
