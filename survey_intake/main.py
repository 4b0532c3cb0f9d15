"""FastAPI application entry point for the survey intake server.

This module initializes the FastAPI application, sets up logging,
registers routers, and handles global exception handling.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from survey_intake import __version__
from survey_intake.config import get_settings
from survey_intake.logging_config import setup_logging, get_logger
from survey_intake.routes import health, uploads

# Initialize logger (will be configured during startup)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Configures logging on startup and logs startup and shutdown.

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    # Startup
    settings = get_settings()
    setup_logging()

    logger.info(
        f"Survey intake server starting - "
        f"Environment: {settings.environment}, "
        f"Log Level: {settings.log_level}, "
        f"Campaigns: {settings.campaigns_dir}, "
        f"Version: {settings.git_commit_sha}"
    )

    yield

    # Shutdown
    logger.info("Survey intake server shutting down")


# Initialize FastAPI application
app = FastAPI(
    title="Survey Intake",
    description="Validates uploaded survey responses against campaign definitions",
    version=__version__,
    lifespan=lifespan
)


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with basic API information.

    Returns:
        dict: API information and status
    """
    settings = get_settings()
    return {
        "service": "Survey Intake",
        "version": __version__,
        "environment": settings.environment,
        "status": "operational"
    }


# Register routers
app.include_router(health.router, tags=["Health"])
app.include_router(uploads.router, tags=["Uploads"])


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled exceptions.

    Logs all unhandled exceptions and returns a generic error response
    to prevent leaking internal details.

    Args:
        request: FastAPI request object
        exc: Exception that was raised

    Returns:
        JSONResponse: Generic error response
    """
    logger.error(
        f"Unhandled exception for {request.method} {request.url}: {exc}",
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )
