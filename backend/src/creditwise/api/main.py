"""Main FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from creditwise import __version__
from creditwise.api.rate_limit import limiter
from creditwise.api.v1.admin import router as admin_router
from creditwise.api.v1.billing import router as billing_router
from creditwise.api.v1.credits import router as credits_router
from creditwise.api.v1.referral import router as referral_router
from creditwise.api.v1.webhooks import router as webhooks_router
from creditwise.exceptions import CreditwiseError
from creditwise.logging_config import get_logger, setup_logging
from creditwise.services import Services, build_services
from creditwise.settings import settings as default_settings

logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # Prevent clickjacking - don't allow embedding in iframes
        response.headers["X-Frame-Options"] = "DENY"

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Referrer Policy - don't leak URLs to other sites
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # JSON API only
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    services: Services = app.state.services
    logger.info("app_starting", env=services.settings.env)

    services.db.create_tables()
    services.config_store.get_config()

    yield

    logger.info("app_shutting_down")
    services.db.dispose()


def create_app(services: Services | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        services: Pre-built service graph (defaults to one built from settings)

    Returns:
        Configured FastAPI app
    """
    if services is None:
        setup_logging()
        services = build_services(default_settings)
    settings = services.settings

    # Hide API docs in production
    is_production = settings.env == "production"

    app = FastAPI(
        title="Creditwise API",
        description="Referral rewards and subscription billing",
        version=__version__,
        docs_url=None if is_production else "/api/docs",
        redoc_url=None if is_production else "/api/redoc",
        openapi_url=None if is_production else "/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services

    # Security Headers middleware (must be added before CORS)
    app.add_middleware(SecurityHeadersMiddleware)

    allowed_origins = [
        origin.strip()
        for origin in settings.allowed_origins.split(",")
        if origin.strip()
    ]

    # Block wildcard in production
    if is_production and "*" in allowed_origins:
        logger.error("cors_wildcard_blocked", message="Wildcard CORS not allowed in production")
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        max_age=3600,
    )

    # Rate limiting (shared instance from rate_limit module)
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests. Please try again later."},
        )

    @app.exception_handler(CreditwiseError)
    async def service_error_handler(request: Request, exc: CreditwiseError):
        logger.error(
            "request_failed",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    # Include v1 API routers
    app.include_router(referral_router, prefix="/api/v1")
    app.include_router(credits_router, prefix="/api/v1")
    app.include_router(billing_router, prefix="/api/v1")
    app.include_router(webhooks_router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "env": settings.env,
        }

    return app
