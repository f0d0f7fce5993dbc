"""
Storage Kit - Main Application

FastAPI application exposing the storage facade over HTTP.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storage_kit.api.routes.files import router as files_router
from storage_kit.config.logging_config import configure_logging
from storage_kit.config.settings import Settings, settings as default_settings
from storage_kit.core.context import StorageContext
from storage_kit.core.storage_manager import StorageManager
from storage_kit.infrastructure.storage import build_storage_context

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    context: Optional[StorageContext] = None
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Service settings (environment-derived when None)
        context: Pre-built storage context; built from settings on startup when None

    Returns:
        Configured FastAPI app. The storage context is closed on shutdown.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        # Startup
        logger.info(f"Starting {settings.service_name} ({settings.environment})")

        storage_context = context or build_storage_context(settings)
        app.state.storage_context = storage_context
        app.state.storage_manager = StorageManager(storage_context, settings)

        for descriptor in storage_context.registry.get_all():
            logger.info(f"Storage provider: {descriptor} [{descriptor.provider_type}]")

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.service_name}")
        await storage_context.aclose()

    app = FastAPI(
        title="Storage Kit",
        description="Backend-agnostic file storage with image renditions",
        version="0.1.0",
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(files_router)

    # Root endpoint
    @app.get(
        "/",
        summary="Service Information",
        description="Returns service identification, version and environment.",
        responses={
            200: {"description": "Service information returned successfully"}
        }
    )
    async def root():
        """Root endpoint"""
        return {
            "service": settings.service_name,
            "version": "0.1.0",
            "status": "running",
            "environment": settings.environment
        }

    return app


def run() -> None:
    """Console entry point"""
    import uvicorn

    configure_logging(default_settings.log_level)
    uvicorn.run(
        "storage_kit.main:create_app",
        factory=True,
        host=default_settings.host,
        port=default_settings.port,
        reload=True if default_settings.environment == "development" else False
    )


if __name__ == "__main__":
    run()
