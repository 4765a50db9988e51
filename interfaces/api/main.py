"""Main FastAPI application."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from infrastructure.config import Settings, get_settings
from infrastructure.di.container import create_container
from infrastructure.logging import setup_logging
from interfaces.api.routes.object_routes import router as object_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown."""
    settings: Settings = app.state.settings
    logger.info("app_starting", env=settings.app_env, storage_root=str(settings.storage_root))

    await asyncio.to_thread(settings.storage_root.mkdir, parents=True, exist_ok=True)

    logger.info("app_ready")

    yield

    logger.info("app_shutting_down")
    logger.info("app_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Write-once blob store API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = create_container(settings)

    app.include_router(object_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


def run() -> None:
    """Serve the API on the configured listen address."""
    settings = get_settings()
    setup_logging(settings)
    logger.info("blob_server_listening", host=settings.api_host, port=settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_config=None)


if __name__ == "__main__":
    run()
