"""FastAPI middleware for request/response logging and correlation."""

import time
import uuid
from typing import Callable, Iterable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from subscription_sync.logging_config import bind_context, clear_context, get_logger

logger = get_logger(__name__)

WEBHOOK_PATH_PREFIX = "/api/webhooks/"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with a correlation id.

    Stripe deliveries and buyer-facing calls are told apart by ``channel`` so
    a webhook's request_id can be followed into the dispatcher's event logs.
    Health checks are logged at DEBUG. Requests slower than the threshold are
    logged as warnings.
    """

    def __init__(
        self,
        app: ASGIApp,
        include_request_details: bool = True,
        slow_request_ms: float = 2000.0,
        quiet_paths: Iterable[str] = ("/", "/health"),
    ):
        """Initialize middleware.

        Args:
            app: ASGI application
            include_request_details: If True, log client host and user agent
            slow_request_ms: Duration above which a completed request is a warning
            quiet_paths: Paths logged at DEBUG only
        """
        super().__init__(app)
        self.include_request_details = include_request_details
        self.slow_request_ms = slow_request_ms
        self.quiet_paths = frozenset(quiet_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        path = request.url.path
        channel = "webhook" if path.startswith(WEBHOOK_PATH_PREFIX) else "api"
        bind_context(request_id=request_id, channel=channel)
        log = logger.debug if path in self.quiet_paths else logger.info

        details = {}
        if self.include_request_details:
            details["client_host"] = request.client.host if request.client else "unknown"
            details["user_agent"] = request.headers.get("user-agent")
        if channel == "webhook":
            details["signed"] = "stripe-signature" in request.headers
        log("request_started", method=request.method, path=path, **details)

        start_time = time.perf_counter()

        try:
            response = await call_next(request)

            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            if duration_ms > self.slow_request_ms:
                log = logger.warning
            log(
                "request_completed",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                slow=duration_ms > self.slow_request_ms,
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.error(
                "request_failed",
                method=request.method,
                path=path,
                duration_ms=duration_ms,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise

        finally:
            clear_context()
