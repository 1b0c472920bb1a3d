"""Structured logging configuration using structlog.

Every log line carries the app name and whatever reconciliation context is
bound at the time: request_id from the HTTP middleware, event_id/event_type
from the webhook dispatcher and external_subscription_id from the engine.
Customer emails are masked and Stripe credentials never reach the output.
"""

import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.typing import EventDict, Processor

APP_NAME = "subscription-sync"

EMAIL_KEYS = frozenset({"email", "user_email", "customer_email"})
SECRET_KEYS = frozenset({"api_key", "stripe_signature", "webhook_secret", "authorization"})

# Libraries whose INFO output duplicates our own request and provider logs
NOISY_LOGGERS = ("stripe", "uvicorn.access", "httpx")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-wide context to log events."""
    event_dict["app"] = APP_NAME
    return event_dict


def mask_email(value: Any) -> Any:
    """Keep the first character and the domain: ``a***@x.com``."""
    if not isinstance(value, str) or "@" not in value:
        return value
    local, _, domain = value.partition("@")
    return f"{local[:1]}***@{domain}"


def mask_sensitive_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask customer emails and redact Stripe credentials."""
    for key in EMAIL_KEYS.intersection(event_dict):
        event_dict[key] = mask_email(event_dict[key])
    for key in SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def drop_debug_in_production(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Drop DEBUG logs if not in debug mode."""
    if method_name == "debug" and not is_debug_mode():
        raise structlog.DropEvent
    return event_dict


def is_debug_mode() -> bool:
    return os.getenv("LOG_LEVEL", "INFO").upper() == "DEBUG"


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    include_timestamp: bool = True,
) -> None:
    """Configure structlog for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, output JSON; if False, use colored console output
        include_timestamp: Include ISO8601 timestamps in logs
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )
    quiet_third_party_loggers(numeric_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        mask_sensitive_fields,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if numeric_level > logging.DEBUG:
        processors.append(drop_debug_in_production)

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_env() -> None:
    """Configure logging from LOG_LEVEL and LOG_FORMAT (json or console)."""
    configure_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        json_format=os.getenv("LOG_FORMAT", "json").lower() == "json",
    )


def quiet_third_party_loggers(level: int) -> None:
    """Raise library loggers to WARNING unless the service itself runs at DEBUG."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically __name__ from calling module)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables that will be included in all subsequent logs.

    Example:
        bind_context(request_id="abc123", event_id="evt_123")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def reconciliation_context(
    event_id: Optional[str] = None,
    event_type: Optional[str] = None,
    external_subscription_id: Optional[str] = None,
) -> Iterator[None]:
    """Bind reconciliation identifiers for the duration of a block.

    Only the identifiers given are bound. Values bound by an outer block are
    restored on exit, so a webhook's event_id survives the engine binding its
    subscription id.
    """
    values = {
        key: value
        for key, value in (
            ("event_id", event_id),
            ("event_type", event_type),
            ("external_subscription_id", external_subscription_id),
        )
        if value is not None
    }
    with structlog.contextvars.bound_contextvars(**values):
        yield
