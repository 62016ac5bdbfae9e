"""
FastAPI Application Module

Application factory for the flow engine HTTP API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Settings, StorageBackend, get_settings
from ..core.logging import get_logger, setup_logging
from ..database import DatabaseManager, DatabaseVersionStorage
from ..flows import FlowError, FlowService, FlowValidator, InMemoryVersionStorage
from .routes import router

logger = get_logger(__name__)


# =============================================================================
# Exception Handlers
# =============================================================================


async def flow_error_handler(request: Request, exc: FlowError):
    """Handle flow engine errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "data": None,
            "error": exc.to_dict(),
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "data": None,
            "error": {
                "code": "SYS_9001",
                "message": "An unexpected error occurred",
                "details": None,
            },
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


# =============================================================================
# Application Factory
# =============================================================================


def build_service(settings: Settings) -> Tuple[FlowService, Optional[DatabaseManager]]:
    """
    Build the flow service for the configured storage backend.

    Returns:
        Tuple of (service, database manager or None)
    """
    validator = FlowValidator(settings=settings.validation)

    if settings.storage.backend == StorageBackend.DATABASE:
        db = DatabaseManager.from_config(settings.storage)
        return FlowService(DatabaseVersionStorage(db), validator=validator), db

    return FlowService(InMemoryVersionStorage(), validator=validator), None


def create_app(
    service: Optional[FlowService] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Flow service to serve; built from settings when omitted
        settings: Application settings

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    db: Optional[DatabaseManager] = None
    if service is None:
        service, db = build_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_format, settings.service_name)
        logger.info(f"Starting {settings.service_name} v{__version__}")

        if db is not None:
            await db.create_all()
            if await db.health_check():
                logger.info("Database connection established successfully")
            else:
                logger.error("Database connection failed!")

        yield

        logger.info(f"Shutting down {settings.service_name}")
        if db is not None:
            await db.close()

    app = FastAPI(
        title="Call Flow Engine",
        description="Flow definition, validation and versioning for voice bots",
        version=__version__,
        docs_url="/docs" if settings.enable_docs else None,
        redoc_url="/redoc" if settings.enable_docs else None,
        openapi_url="/openapi.json" if settings.enable_docs else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.flow_service = service

    app.add_exception_handler(FlowError, flow_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get("/health", tags=["Health"])
    async def health():
        return {
            "status": "healthy",
            "service": settings.service_name,
            "version": __version__,
            "timestamp": datetime.utcnow().isoformat(),
        }

    app.include_router(router, prefix=settings.api_prefix)

    return app


# =============================================================================
# Entry Point
# =============================================================================


def run_server(
    host: Optional[str] = None,
    port: Optional[int] = None,
    reload: bool = False,
):
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "callflow_core.api.app:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_server(reload=True)
