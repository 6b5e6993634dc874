"""
Archive Ingestion Service - FastAPI Application Entry Point

Bulk PDF ingestion, validated CSV enrichment, and full-text search with
a database fallback.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from app.core.config import settings
from app.core.exceptions import ArchiveServiceError
from app.core.rate_limit import limiter, rate_limit_exceeded_handler
from app.models.schemas import ErrorDetail, ErrorResponse

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    - Startup: create tables, start the background indexing queue,
      probe the search engine (warn only, don't crash)
    - Shutdown: wait for running imports, flush the indexing queue,
      close the search client and the database engine
    """
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")

    from app.core.database import close_shared_engine, init_db
    from app.services.background_tasks import get_indexing_queue
    from app.services.csv_import_service import get_csv_import_service
    from app.services.import_service import get_import_service
    from app.services.search_client import get_search_client

    try:
        init_db()
        logger.info("Database connection: Available")
    except Exception as e:
        logger.warning(f"Database initialization failed: {e} (service will continue)")

    indexing_queue = get_indexing_queue()
    indexing_queue.start()

    search_client = get_search_client()
    if await search_client.health():
        logger.info("Search engine: Available")
    else:
        logger.warning("Search engine: Unavailable (search will use the database fallback)")

    logger.info(f"{settings.app_name} started successfully")

    yield

    logger.info(f"Shutting down {settings.app_name}...")

    try:
        await get_import_service().drain()
        await get_csv_import_service().drain()
    except Exception as e:
        logger.error(f"Failed to drain import tasks: {e}")

    try:
        await indexing_queue.stop()
    except Exception as e:
        logger.error(f"Failed to stop indexing queue: {e}")

    try:
        await search_client.close()
    except Exception as e:
        logger.error(f"Failed to close search client: {e}")

    try:
        close_shared_engine()
        logger.info("Shared database engine closed successfully")
    except Exception as e:
        logger.error(f"Failed to close shared database engine: {e}")

    logger.info(f"{settings.app_name} shutdown complete")


def create_application() -> FastAPI:
    """
    Application factory pattern.
    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Bulk archive ingestion, CSV enrichment and full-text search",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Configure Rate Limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Register exception handlers
    app.add_exception_handler(ArchiveServiceError, service_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include API routers
    from app.api.v1 import router as api_v1_router
    app.include_router(api_v1_router, prefix=settings.api_v1_prefix)

    return app


# =============================================================================
# Exception Handlers
# =============================================================================

async def service_exception_handler(
    request: Request, exc: ArchiveServiceError
) -> JSONResponse:
    """Map service errors to their HTTP status with structured details."""
    response = ErrorResponse(
        error=exc.error_code,
        message=exc.message,
        details=exc.details,
        request_id=request.headers.get("X-Request-ID"),
    )

    if exc.status_code >= 500:
        logger.error(f"{exc.error_code}: {exc.message}")
    else:
        logger.warning(f"{exc.error_code}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=response.model_dump(mode="json"),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle Pydantic validation errors.
    Returns HTTP 400 with detailed error information.
    """
    errors = []
    for error in exc.errors():
        errors.append(
            ErrorDetail(
                field=".".join(str(loc) for loc in error["loc"]),
                message=error["msg"],
                code=error["type"],
            )
        )

    response = ErrorResponse(
        error="validation_error",
        message="Request validation failed",
        details=errors,
        request_id=request.headers.get("X-Request-ID"),
    )

    logger.warning(f"Validation error: {response.model_dump_json()}")

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=response.model_dump(mode="json"),
    )


async def general_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions.
    Returns HTTP 500 while maintaining service availability.
    """
    logger.exception(f"Unexpected error: {exc}")

    response = ErrorResponse(
        error="internal_error",
        message="An unexpected error occurred" if not settings.debug else str(exc),
        request_id=request.headers.get("X-Request-ID"),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=response.model_dump(mode="json"),
    )


# Create application instance
app = create_application()


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """Root endpoint - service information"""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "docs": "/docs",
    }
