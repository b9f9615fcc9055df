"""
TodoNote Backend Application

FastAPI application exposing the note store, attachment storage and
knowledge-base sync.

Start locally:
    uvicorn todonote.main:app --host 0.0.0.0 --port 8000 --reload
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from todonote.api.v1.knowledge import router as knowledge_router
from todonote.api.v1.notes import attachments_router
from todonote.api.v1.notes import router as notes_router
from todonote.core.config import settings
from todonote.core.errors import StoreWriteError
from todonote.core.logging import setup_logging
from todonote.services.container import ServiceContainer, build_services

# Initialize logging before any log statements
setup_logging()
logger = logging.getLogger(__name__)


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built services (tests inject fakes). Built from
            settings at startup when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
            - Build services from settings unless injected.
        Shutdown:
            - Let background knowledge-base syncs finish, close HTTP pool.
        """
        logger.info("Starting %s...", settings.PROJECT_NAME)
        container = services or build_services(settings)
        app.state.services = container
        logger.info("Notes file: %s", container.store.path)

        yield  # Application runs here

        logger.info(
            "Shutting down, waiting for %d syncs...", container.coordinator.pending
        )
        await container.aclose()

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

    app.include_router(notes_router, prefix="/api/v1/notes", tags=["Notes"])
    app.include_router(
        attachments_router, prefix="/api/v1/attachments", tags=["Attachments"]
    )
    app.include_router(knowledge_router, prefix="/api/v1", tags=["Knowledge"])

    @app.exception_handler(StoreWriteError)
    async def store_write_error_handler(request: Request, exc: StoreWriteError):
        logger.error("Store write failed on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Could not write note store"},
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint for load balancers and orchestrators."""
        container: ServiceContainer = app.state.services
        return {
            "status": "ok",
            "service": "todonote",
            "environment": os.getenv("ENVIRONMENT", "local"),
            "remote_sync": container.client is not None,
        }

    return app


app = create_app()
