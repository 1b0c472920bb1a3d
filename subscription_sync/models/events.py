"""Inbound event models.

SubscriptionEvent is the normalized unit of work consumed by the reconciliation
engine. WebhookEnvelope is the verified Stripe event handed over by the webhook
route. ProviderSubscription is what the provider client reports for one
subscription.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from subscription_sync.utils.timestamps import from_epoch_seconds

from .subscription import SubscriptionStatus


def _coerce_status(value: Any) -> Any:
    if isinstance(value, str):
        return SubscriptionStatus.from_provider(value)
    return value


class ProviderSubscription(BaseModel):
    """Subscription details as reported by the payment provider."""

    external_id: str = Field(..., min_length=1, description="Provider subscription id")
    status: SubscriptionStatus = Field(..., description="Reported status")
    customer_id: Optional[str] = Field(None, description="Provider customer id")
    price_id: Optional[str] = Field(None, description="Price id of the first subscription item")
    period_start: Optional[datetime] = Field(None, description="Current period start (UTC)")
    period_end: Optional[datetime] = Field(None, description="Current period end (UTC)")

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        return _coerce_status(value)

    @field_validator("period_start", "period_end", mode="before")
    @classmethod
    def parse_period(cls, value: Any) -> Optional[datetime]:
        return from_epoch_seconds(value)


class SubscriptionEvent(BaseModel):
    """A normalized subscription status report, from either entry point."""

    external_subscription_id: str = Field(..., min_length=1, description="Provider subscription id")
    reported_status: SubscriptionStatus = Field(..., description="Status reported by the provider")
    customer_email: Optional[str] = Field(None, description="Customer email, when the event carries it")
    customer_id: Optional[str] = Field(None, description="Provider customer id, when the event carries it")
    price_id: Optional[str] = Field(None, description="Provider price id, when the event carries it")
    period_start: Optional[datetime] = Field(None, description="Current period start (UTC)")
    period_end: Optional[datetime] = Field(None, description="Current period end (UTC)")

    @field_validator("reported_status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        return _coerce_status(value)

    @field_validator("period_start", "period_end", mode="before")
    @classmethod
    def parse_period(cls, value: Any) -> Optional[datetime]:
        return from_epoch_seconds(value)

    @classmethod
    def from_provider_subscription(
        cls,
        subscription: ProviderSubscription,
        customer_email: Optional[str] = None,
        status: Optional[SubscriptionStatus] = None,
    ) -> "SubscriptionEvent":
        """Build an event from provider-reported details.

        Args:
            subscription: Provider subscription details
            customer_email: Customer email if already known
            status: Overrides the reported status (e.g. CANCELED for deletions)
        """
        return cls(
            external_subscription_id=subscription.external_id,
            reported_status=status or subscription.status,
            customer_email=customer_email,
            customer_id=subscription.customer_id,
            price_id=subscription.price_id,
            period_start=subscription.period_start,
            period_end=subscription.period_end,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "external_subscription_id": "sub_100",
                "reported_status": "ACTIVE",
                "customer_email": "a@x.com",
                "price_id": "price_1PremiumMonthly",
                "period_start": 1790000000,
                "period_end": 1792592000,
            }
        }


class WebhookEventData(BaseModel):
    """The ``data`` member of a Stripe event."""

    payload: Dict[str, Any] = Field(..., alias="object", description="The event's API object")


class WebhookEnvelope(BaseModel):
    """A verified Stripe webhook event."""

    id: str = Field(..., description="Provider event id")
    type: str = Field(..., description="Event type, e.g. customer.subscription.updated")
    created: Optional[int] = Field(None, description="Event creation time (epoch seconds)")
    livemode: bool = Field(default=False, description="Whether the event comes from live mode")
    data: WebhookEventData

    @property
    def payload(self) -> Dict[str, Any]:
        return self.data.payload

    class Config:
        json_schema_extra = {
            "example": {
                "id": "evt_1Nabc",
                "type": "customer.subscription.updated",
                "created": 1790000000,
                "livemode": False,
                "data": {"object": {"id": "sub_100", "object": "subscription", "status": "past_due"}},
            }
        }


def field(obj: Any, key: str) -> Any:
    """Read one field from a Stripe object or a plain dict, None when absent."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


def _first_item(subscription: Any) -> Any:
    data = field(field(subscription, "items"), "data")
    if data:
        return data[0]
    return None


def expandable_id(value: Any) -> Optional[str]:
    # Expandable fields arrive either as an id string or as the expanded object
    if value is None or isinstance(value, str):
        return value
    return field(value, "id")


def parse_stripe_subscription(subscription: Any) -> ProviderSubscription:
    """Normalize a Stripe subscription object.

    Accepts a ``stripe.Subscription`` or the equivalent dict from a webhook
    payload. Period bounds are read from the subscription itself or, for API
    versions that moved them, from its first item.

    Raises:
        pydantic.ValidationError: If id or status is missing or unknown
    """
    item = _first_item(subscription)
    return ProviderSubscription(
        external_id=field(subscription, "id"),
        status=field(subscription, "status"),
        customer_id=expandable_id(field(subscription, "customer")),
        price_id=expandable_id(field(item, "price")),
        period_start=field(subscription, "current_period_start") or field(item, "current_period_start"),
        period_end=field(subscription, "current_period_end") or field(item, "current_period_end"),
    )
