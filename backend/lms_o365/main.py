"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from lms_o365.api import cron, repository, ucp
from lms_o365.config import get_settings
from lms_o365.core.logging import (
    configure_logging,
    generate_request_id,
    get_logger,
    request_id_ctx,
)
from lms_o365.core.rate_limit import limiter
from lms_o365.services.cache_service import close_caches

settings = get_settings()

# Configure structured logging
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug,
    )

    if settings.is_o365_configured:
        logger.info(
            "o365_configured",
            graph=settings.is_unified_configured,
            onedrive=settings.is_onedrive_configured,
            sharepoint=settings.is_sharepoint_configured,
        )
    else:
        logger.warning(
            "o365_not_configured",
            message="Office 365 features are disabled. "
            "Set AZURE_AD_TENANT_ID, AZURE_AD_CLIENT_ID, and AZURE_AD_CLIENT_SECRET.",
        )

    yield

    await close_caches()
    logger.info("application_shutdown")


app = FastAPI(
    title="LMS Office 365 Integration API",
    description=(
        "Office 365 integration for the LMS: user control panel, Outlook "
        "calendar sync, the Office 365 file repository and scheduled jobs."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "Origin",
        "X-Requested-With",
    ],
    expose_headers=["X-Request-ID"],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Request correlation ID middleware
@app.middleware("http")
async def add_request_id_middleware(request, call_next):
    """Add correlation ID to each request."""
    request_id = generate_request_id()
    request_id_ctx.set(request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Include routers
app.include_router(ucp.router, prefix="/api/v1")
app.include_router(repository.router, prefix="/api/v1")
app.include_router(cron.router, prefix="/api/v1")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": "LMS Office 365 Integration API",
        "version": "1.0.0",
        "docs": "/docs" if settings.debug else "disabled",
    }
