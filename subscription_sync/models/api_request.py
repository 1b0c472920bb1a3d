"""API request and response models for the HTTP endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .plan import PlanDefinition
from .subscription import SubscriptionRecord, SubscriptionStatus


class CheckoutCompleteRequest(BaseModel):
    """Request sent by the buyer-facing flow right after payment."""

    user_email: str = Field(..., min_length=3, description="Email of the paying user")
    plan_id: int = Field(..., description="Internal plan identifier that was purchased")
    external_subscription_id: str = Field(..., min_length=1, description="Provider subscription id")

    class Config:
        json_schema_extra = {
            "example": {
                "user_email": "a@x.com",
                "plan_id": 7,
                "external_subscription_id": "sub_100",
            }
        }


class CancelSubscriptionRequest(BaseModel):
    """Request to cancel the user's active subscription."""

    user_email: str = Field(..., min_length=3, description="Email of the user canceling")

    class Config:
        json_schema_extra = {"example": {"user_email": "a@x.com"}}


class SubscriptionResponse(BaseModel):
    """A subscription record as exposed over HTTP."""

    id: int = Field(..., description="Record identifier")
    user_id: str = Field(..., description="Owning user identifier")
    plan_id: int = Field(..., description="Internal plan identifier")
    plan_name: Optional[str] = Field(None, description="Plan name, if the plan is still in the catalog")
    external_subscription_id: str = Field(..., description="Provider subscription id")
    status: SubscriptionStatus = Field(..., description="Current status")
    current_period_start: Optional[datetime] = Field(None, description="Current period start (UTC)")
    current_period_end: Optional[datetime] = Field(None, description="Current period end (UTC)")
    updated_at: datetime = Field(..., description="Last write time (UTC)")

    @classmethod
    def from_record(
        cls, record: SubscriptionRecord, plan: Optional[PlanDefinition] = None
    ) -> "SubscriptionResponse":
        return cls(
            id=record.id,
            user_id=record.user_id,
            plan_id=record.plan_id,
            plan_name=plan.name if plan else None,
            external_subscription_id=record.external_subscription_id,
            status=record.status,
            current_period_start=record.current_period_start,
            current_period_end=record.current_period_end,
            updated_at=record.updated_at,
        )


class SubscriptionStatusResponse(BaseModel):
    """Whether a user currently has an active subscription."""

    email: str = Field(..., description="User email")
    has_active_subscription: bool = Field(..., description="True if an ACTIVE record exists")


class PlanListResponse(BaseModel):
    """Plans currently offered."""

    plans: List[PlanDefinition] = Field(default_factory=list)


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to the provider for a delivered webhook."""

    received: bool = Field(default=True, description="The event was received")
    event_id: str = Field(..., description="Provider event id")
    event_type: str = Field(..., description="Provider event type")
    applied: bool = Field(..., description="Whether the event changed a subscription record")
    outcome: str = Field(..., description="applied, ignored or rejected")
    error: Optional[str] = Field(None, description="Error code for rejected events")

    class Config:
        json_schema_extra = {
            "example": {
                "received": True,
                "event_id": "evt_1Nabc",
                "event_type": "customer.subscription.updated",
                "applied": True,
                "outcome": "applied",
                "error": None,
            }
        }


class ErrorResponse(BaseModel):
    """Error payload for failed requests."""

    error: str = Field(..., description="Stable error code")
    message: str = Field(..., description="Human-readable message")
    retryable: bool = Field(default=False, description="Whether retrying later may succeed")
