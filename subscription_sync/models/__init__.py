"""Pydantic models for API requests, responses, and domain objects."""

# User and plan models
from .user import UserRecord
from .plan import (
    PlanDefinition,
    ProviderSettings,
    WebhookSettings,
    BillingConfig,
)

# Subscription models
from .subscription import (
    SubscriptionStatus,
    SubscriptionRecord,
)

# Event models
from .events import (
    ProviderSubscription,
    SubscriptionEvent,
    WebhookEnvelope,
    parse_stripe_subscription,
)

# API models
from .api_request import (
    CheckoutCompleteRequest,
    CancelSubscriptionRequest,
    SubscriptionResponse,
    SubscriptionStatusResponse,
    PlanListResponse,
    WebhookAckResponse,
    ErrorResponse,
)

__all__ = [
    # Users and plans
    "UserRecord",
    "PlanDefinition",
    "ProviderSettings",
    "WebhookSettings",
    "BillingConfig",
    # Subscription
    "SubscriptionStatus",
    "SubscriptionRecord",
    # Events
    "ProviderSubscription",
    "SubscriptionEvent",
    "WebhookEnvelope",
    "parse_stripe_subscription",
    # API
    "CheckoutCompleteRequest",
    "CancelSubscriptionRequest",
    "SubscriptionResponse",
    "SubscriptionStatusResponse",
    "PlanListResponse",
    "WebhookAckResponse",
    "ErrorResponse",
]
