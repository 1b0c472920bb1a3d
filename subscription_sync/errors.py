"""Errors surfaced by the reconciliation engine and its entry points.

Every error carries a stable ``code`` and a ``retryable`` flag. Retryable errors
are answered so that the payment provider redelivers the event later; the rest
are reported to the caller as final.
"""

from typing import Optional


class ReconciliationError(Exception):
    """Base exception for subscription reconciliation errors."""

    code = "reconciliation_error"
    default_retryable = False

    def __init__(self, message: str, retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        self.retryable = self.default_retryable if retryable is None else retryable

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, retryable={self.retryable})"


class UserNotFoundError(ReconciliationError):
    """Raised when no local user matches the event's customer email.

    Retryable on the webhook paths (the user may not be committed yet), final
    on the HTTP checkout and cancel routes.
    """

    code = "user_not_found"


class PlanNotFoundError(ReconciliationError):
    """Raised when a price id or plan id does not resolve to a known plan."""

    code = "plan_not_found"


class AlreadyActiveError(ReconciliationError):
    """Raised by checkout completion when the user already has an ACTIVE subscription."""

    code = "already_active"


class ProviderUnavailableError(ReconciliationError):
    """Raised on provider transport errors, rate limiting and timeouts."""

    code = "provider_unavailable"
    default_retryable = True


class ProviderResourceNotFoundError(ReconciliationError):
    """Raised when the provider reports that a subscription or customer does not exist."""

    code = "provider_resource_not_found"


class InvalidEventError(ReconciliationError):
    """Raised when an event cannot be normalized (missing id, unknown status)."""

    code = "invalid_event"


class NoActiveSubscriptionError(ReconciliationError):
    """Raised by cancellation when the user has no ACTIVE subscription."""

    code = "no_active_subscription"
