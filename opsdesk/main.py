"""
OpsDesk - Main Application Entry Point

FastAPI application exposing the record accessors over HTTP.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import settings
from .database.connection import Database, get_database
from .database.exceptions import (
    GENERIC_BACKEND_MESSAGE,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    BackendError,
    TreeIntegrityError,
)
from .utils.background_tasks import drain_background_tasks
from .web.routes import router as api_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    logger.info("Starting OpsDesk...")
    db: Database = app.state.db

    if await db.initialize():
        logger.info("Database initialized")
    else:
        logger.warning("Database not configured or failed to initialize")

    yield

    logger.info("Shutting down OpsDesk...")
    # Let queued notifications land before the engine goes away
    await drain_background_tasks()
    await db.close()


async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "validation_error", "detail": str(exc), "field": exc.field},
    )


async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": "not_found", "detail": str(exc)})


async def forbidden_handler(request: Request, exc: ForbiddenError):
    return JSONResponse(status_code=403, content={"error": "forbidden", "detail": str(exc)})


async def backend_error_handler(request: Request, exc: BackendError):
    # Internal text was logged where the error was raised
    return JSONResponse(status_code=503, content={"error": "backend_error", "detail": exc.user_message})


async def tree_integrity_handler(request: Request, exc: TreeIntegrityError):
    logger.error(f"Task tree integrity violation: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "internal_error", "detail": GENERIC_BACKEND_MESSAGE})


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "detail": GENERIC_BACKEND_MESSAGE}
    )


def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the application. Tests pass their own Database."""
    app = FastAPI(
        title="OpsDesk",
        description="Multi-tenant business operations records: tasks, leave, credentials",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.db = database or get_database()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ForbiddenError, forbidden_handler)
    app.add_exception_handler(BackendError, backend_error_handler)
    app.add_exception_handler(TreeIntegrityError, tree_integrity_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(api_router)

    @app.get("/")
    async def root():
        """Root endpoint - health check."""
        return {"status": "healthy", "service": "OpsDesk", "version": __version__}

    @app.get("/health")
    async def health_check():
        """Detailed health check endpoint."""
        db_health = await app.state.db.health_check()
        return {
            "status": "healthy" if db_health.get("status") == "healthy" else "degraded",
            "database": db_health,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "opsdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
