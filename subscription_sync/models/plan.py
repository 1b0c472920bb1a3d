"""Plan definition and service configuration models.

Models from billing.yaml configuration.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .user import UserRecord


class PlanDefinition(BaseModel):
    """Subscription plan from the plan catalog."""

    id: int = Field(..., description="Internal plan identifier")
    name: str = Field(..., description="Human-readable plan name")
    description: Optional[str] = Field(None, description="Plan description")
    external_price_id: str = Field(..., min_length=1, description="Provider price identifier (unique)")
    duration_months: int = Field(..., gt=0, description="Billing duration in months")
    is_active: bool = Field(default=True, description="Whether the plan is offered")

    class Config:
        json_schema_extra = {
            "example": {
                "id": 7,
                "name": "Premium Monthly",
                "description": "All stock picks and research notes",
                "external_price_id": "price_1PremiumMonthly",
                "duration_months": 1,
                "is_active": True,
            }
        }


class ProviderSettings(BaseModel):
    """Payment provider client settings."""

    api_key_env: str = Field(default="STRIPE_API_KEY", description="Environment variable holding the API key")
    timeout_seconds: float = Field(default=10.0, gt=0, description="HTTP timeout for provider calls")
    max_network_retries: int = Field(default=2, ge=0, description="Client-side retries on network errors")


class WebhookSettings(BaseModel):
    """Inbound webhook settings."""

    secret_env: str = Field(
        default="STRIPE_WEBHOOK_SECRET", description="Environment variable holding the signing secret"
    )
    tolerance_seconds: int = Field(default=300, gt=0, description="Maximum accepted signature age")


class BillingConfig(BaseModel):
    """Complete billing.yaml configuration."""

    plans: list[PlanDefinition] = Field(default_factory=list, description="Plan catalog")
    users: list[UserRecord] = Field(default_factory=list, description="Users seeded at startup")
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
