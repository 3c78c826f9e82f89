"""Main FastAPI application for the partnerpay API."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from partnerpay.affiliates.errors import AffiliateError
from partnerpay.api.rate_limit import limiter
from partnerpay.api.v1.affiliate import router as affiliate_router
from partnerpay.api.v1.commissions import router as commissions_router
from partnerpay.api.v1.conversions import router as conversions_router
from partnerpay.api.v1.partner_portal import router as partner_portal_router
from partnerpay.api.v1.partners import router as partners_router
from partnerpay.api.v1.payouts import router as payouts_router
from partnerpay.logging_config import configure_logging, get_logger
from partnerpay.settings import settings
from partnerpay.storage.db import db

logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), "
            "camera=(), "
            "geolocation=(), "
            "microphone=(), "
            "payment=(), "
            "usb=()"
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("app_starting", env=settings.env)

    db.create_tables()
    logger.info("database_tables_created")

    yield

    logger.info("app_shutting_down")


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI app
    """
    configure_logging()

    # Hide API docs in production
    is_production = settings.env == "production"

    app = FastAPI(
        title="partnerpay API",
        description="Partner commission attribution and payout ledger",
        version="1.0.0",
        docs_url=None if is_production else "/api/docs",
        redoc_url=None if is_production else "/api/redoc",
        openapi_url=None if is_production else "/api/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(SecurityHeadersMiddleware)

    # CORS - never allow wildcard in production (cookies are credentialed)
    allowed_origins = [
        origin.strip()
        for origin in settings.allowed_origins.split(",")
        if origin.strip()
    ]
    if is_production and "*" in allowed_origins:
        logger.error("cors_wildcard_blocked", message="Wildcard CORS not allowed in production")
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-API-Key"],
        max_age=3600,
    )

    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests. Please try again later."},
        )

    @app.exception_handler(AffiliateError)
    async def affiliate_error_handler(request: Request, exc: AffiliateError):
        logger.info(
            "affiliate_request_rejected",
            path=request.url.path,
            code=exc.code,
            detail=exc.message,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
        )

    app.include_router(affiliate_router, prefix="/api/v1")
    app.include_router(conversions_router, prefix="/api/v1")
    app.include_router(commissions_router, prefix="/api/v1")
    app.include_router(payouts_router, prefix="/api/v1")
    app.include_router(partners_router, prefix="/api/v1")
    app.include_router(partner_portal_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": "1.0.0",
            "env": settings.env,
        }

    return app


# Create app instance
app = create_app()
