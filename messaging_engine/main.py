"""Main FastAPI application for the Messaging Delivery Engine."""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from messaging_engine.api.credentials import router as credentials_router
from messaging_engine.api.health import router as health_router
from messaging_engine.api.messaging import router as messaging_router
from messaging_engine.core.config import get_settings
from messaging_engine.core.dependencies import get_provider_availability, get_repository
from messaging_engine.core.exceptions import (
    BaseAPIException,
    DatabaseError,
    get_user_friendly_error_message,
)
from messaging_engine.core.logging import (
    get_correlation_id,
    get_logger,
    log_error_with_context,
    setup_logging,
)
from messaging_engine.core.middleware import CorrelationIDMiddleware
from messaging_engine.utils.encryption import is_encryption_configured

# Initialize logging
setup_logging()
logger = get_logger(__name__)

# Get settings
settings = get_settings()

# Initialize FastAPI app
app = FastAPI(
    title="Messaging Delivery Engine",
    description="Selects SMS providers and templates across the tenant hierarchy and delivers with failover",
    version=settings.service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Correlation and request logging middleware
app.add_middleware(CorrelationIDMiddleware)

# CORS middleware
if settings.enable_cors:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Include API routers
app.include_router(health_router, tags=["health"])
app.include_router(messaging_router)
app.include_router(credentials_router)


@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    """Render domain errors with their error code and correlation id."""
    exc.correlation_id = get_correlation_id() or exc.correlation_id
    logger.warning(
        "Request failed",
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.error_code,
        error=exc.detail,
    )
    content = {**exc.to_dict(), "user_message": get_user_friendly_error_message(exc.error_code)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(DatabaseError)
async def database_exception_handler(request: Request, exc: DatabaseError):
    """Render storage failures as 500 responses."""
    log_error_with_context(logger, exc, {"path": request.url.path, **exc.context})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": True,
            "error_code": DatabaseError.error_code,
            "message": "A storage error occurred",
            "user_message": get_user_friendly_error_message(DatabaseError.error_code),
            "correlation_id": get_correlation_id(),
            "context": {"operation": exc.operation},
        },
    )


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    availability = get_provider_availability()
    logger.info(
        "Starting Messaging Delivery Engine",
        version=settings.service_version,
        environment=settings.environment,
        storage_configured=get_repository().client is not None,
        encryption_configured=is_encryption_configured(),
        providers={p.value: ok for p, ok in availability.snapshot().items()},
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down Messaging Delivery Engine")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "messaging_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
