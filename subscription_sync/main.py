"""FastAPI application entry point and lifecycle management."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from subscription_sync.config import Config, get_config
from subscription_sync.dependencies import ServiceContainer, build_services
from subscription_sync.errors import ReconciliationError
from subscription_sync.logging_config import configure_logging_from_env, get_logger
from subscription_sync.middleware import RequestLoggingMiddleware
from subscription_sync.models import ErrorResponse

logger = get_logger(__name__)

VERSION = "0.1.0"

# HTTP status for final (non-retryable) errors; retryable ones always get 503
ERROR_STATUS_CODES = {
    "user_not_found": 404,
    "plan_not_found": 404,
    "provider_resource_not_found": 404,
    "no_active_subscription": 404,
    "already_active": 409,
    "invalid_event": 422,
    "provider_unavailable": 503,
}


def status_code_for(error: ReconciliationError) -> int:
    if error.retryable:
        return 503
    return ERROR_STATUS_CODES.get(error.code, 400)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Handles startup and shutdown events.
    """
    services: ServiceContainer = app.state.services
    logger.info("service_starting", version=VERSION)
    try:
        if not services.config.webhook_secret:
            logger.warning(
                "webhook_secret_missing",
                secret_env=services.config.webhook_settings.secret_env,
                message="Webhook deliveries will be refused until the secret is set",
            )
        logger.info(
            "service_started",
            plans=len(services.plan_repository),
            users=len(services.user_repository),
            status="ready",
        )
        yield
    finally:
        logger.info("service_stopped", **services.subscription_store.get_statistics())


def create_app(
    config: Optional[Config] = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        config: Configuration to use (defaults to the shared configuration)
        services: Prebuilt services (defaults to services built from config)

    Returns:
        Configured FastAPI application instance
    """
    configure_logging_from_env()

    if services is None:
        services = build_services(config or get_config())

    app = FastAPI(
        title="Subscription Sync",
        description="Keeps local subscription records in step with Stripe",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    include_request_details = os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true"
    app.add_middleware(
        RequestLoggingMiddleware,
        include_request_details=include_request_details,
        slow_request_ms=float(os.getenv("SLOW_REQUEST_MS", "2000")),
    )

    from subscription_sync.api.subscriptions import router as subscriptions_router
    from subscription_sync.api.webhooks import router as webhooks_router

    app.include_router(webhooks_router)
    app.include_router(subscriptions_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Health check endpoint."""
        logger.debug("root_endpoint_called")
        return {
            "service": "subscription-sync",
            "status": "running",
            "version": VERSION,
        }

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Detailed health check."""
        webhook_status = "configured" if services.config.webhook_secret else "missing_secret"
        config_status = f"loaded ({len(services.plan_repository)} plans)"
        return {
            "status": "healthy",
            "webhook": webhook_status,
            "config": config_status,
            "subscriptions": str(len(services.subscription_store)),
        }

    @app.exception_handler(ReconciliationError)
    async def reconciliation_error_handler(request: Request, exc: ReconciliationError) -> JSONResponse:
        """Translate reconciliation errors into JSON error responses."""
        status_code = status_code_for(exc)
        logger.info(
            "reconciliation_error_response",
            error=exc.code,
            retryable=exc.retryable,
            status_code=status_code,
            path=request.url.path,
        )
        body = ErrorResponse(error=exc.code, message=exc.message, retryable=exc.retryable)
        return JSONResponse(status_code=status_code, content=body.model_dump())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    logger.info("app_created", endpoints=len(app.routes))
    return app
