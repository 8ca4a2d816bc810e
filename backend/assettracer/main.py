"""
Main Backend FastAPI application.
"""
import logging
import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .core.config import settings
from .core.errors import (
    FeatureNotAvailable,
    InvalidArgument,
    NotificationError,
    PaymentGatewayError,
    QuotaExceeded,
)
from .api.v1.auth import router as auth_router
from .api.v1.assets import router as assets_router, inventory_router
from .api.v1.invoices import clients_router, invoices_router, quotations_router
from .api.v1.reservations import router as reservations_router
from .api.v1.team import router as team_router
from .api.v1.subscription import router as subscription_router, limiter
from .api.v1.reports import router as reports_router
from .api.v1.notifications import router as notifications_router
from .api.v1.payments import router as payments_router
from .middleware import EndpointRateLimitMiddleware
from .services.auth_service import auth_service

log_level = logging.DEBUG if settings.debug else logging.INFO

logging.basicConfig(
    level=log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout
)

logging.getLogger("uvicorn.access").setLevel(logging.WARNING)  # Reduce access log noise
logging.getLogger("uvicorn.error").setLevel(logging.INFO)

logger = logging.getLogger(__name__)


class ReverseProxyMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle reverse proxy headers.

    Keeps redirect URLs on https when the API sits behind a load balancer.
    """
    async def dispatch(self, request: Request, call_next):
        forwarded_proto = request.headers.get('x-forwarded-proto')
        if forwarded_proto:
            request.scope['scheme'] = forwarded_proto

        forwarded_host = request.headers.get('x-forwarded-host')
        if forwarded_host:
            request.scope['server'] = (forwarded_host, None)

        return await call_next(request)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events.

    Optional integrations only log a warning when unconfigured; the routes
    that need them answer 503 until they are set.
    """
    logger.info("🚀 Starting AssetTracer API...")

    for integration in settings.missing_integrations():
        logger.warning(f"⚠️  Not configured: {integration}")

    logger.info("🟢 Application startup complete")

    yield

    logger.info("🔄 Shutting down AssetTracer API...")
    if auth_service.redis_client:
        try:
            await auth_service.redis_client.close()
            logger.info("✅ User cache Redis connection closed")
        except Exception as e:
            logger.error(f"⚠️ Error during cleanup: {e}")

    logger.info("🔴 Application shutdown complete")


async def plan_restriction_handler(request: Request, exc):
    """QuotaExceeded and FeatureNotAvailable carry the upgrade details the UI shows."""
    logger.info(f"Plan restriction on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=403, content=exc.to_dict())


async def invalid_argument_handler(request: Request, exc: InvalidArgument):
    return JSONResponse(status_code=400, content=exc.to_dict())


async def upstream_error_handler(request: Request, exc):
    logger.error(f"Upstream failure on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=502, content=exc.to_dict())


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=settings.project_name,
        description="Asset, invoicing and reservation management with tiered subscription plans",
        version="1.0.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(EndpointRateLimitMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.effective_cors_origins,
        allow_origin_regex="|".join(settings.cors_origin_patterns) or None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        expose_headers=["Content-Disposition", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
        max_age=600,
    )

    # Added last so it runs first
    app.add_middleware(ReverseProxyMiddleware)

    logger.info(f"🔒 CORS configured with {len(settings.effective_cors_origins)} static origins")
    logger.info(f"🔒 CORS patterns: {settings.cors_origin_patterns}")

    app.add_exception_handler(QuotaExceeded, plan_restriction_handler)
    app.add_exception_handler(FeatureNotAvailable, plan_restriction_handler)
    app.add_exception_handler(InvalidArgument, invalid_argument_handler)
    app.add_exception_handler(PaymentGatewayError, upstream_error_handler)
    app.add_exception_handler(NotificationError, upstream_error_handler)

    # Public plan table is rate limited per IP by slowapi
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    for router in (
        auth_router,
        assets_router,
        inventory_router,
        clients_router,
        invoices_router,
        quotations_router,
        reservations_router,
        team_router,
        subscription_router,
        reports_router,
        notifications_router,
        payments_router,
    ):
        app.include_router(router, prefix=settings.api_v1_str)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "AssetTracer API",
            "version": "1.0.0",
            "status": "running",
            "docs": "/docs" if settings.debug else "disabled",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "assettracer-api",
            "environment": settings.environment,
            "debug": settings.debug,
        }

    return app


# Create the FastAPI app instance
app = create_application()
