"""Subscription status and record models.

A record mirrors one provider subscription instance. Records are never deleted;
cancellation is a status transition.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

# Stripe statuses that have no direct counterpart in SubscriptionStatus
_PROVIDER_STATUS_ALIASES = {
    "TRIALING": "ACTIVE",
    "PAUSED": "INACTIVE",
}


class SubscriptionStatus(str, Enum):
    """Subscription status as reported by the payment provider."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    UNPAID = "UNPAID"
    INCOMPLETE = "INCOMPLETE"
    INCOMPLETE_EXPIRED = "INCOMPLETE_EXPIRED"

    @classmethod
    def from_provider(cls, value: str) -> "SubscriptionStatus":
        """Map a provider status string (e.g. "past_due") to a status.

        Raises:
            ValueError: If the status is unknown
        """
        normalized = value.strip().upper()
        normalized = _PROVIDER_STATUS_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown subscription status: {value!r}")


class SubscriptionRecord(BaseModel):
    """Internally-owned subscription record."""

    id: int = Field(..., description="Record identifier assigned by the store")
    user_id: str = Field(..., description="Owning user identifier")
    plan_id: int = Field(..., description="Internal plan identifier")
    external_subscription_id: str = Field(
        ..., min_length=1, description="Provider subscription id (globally unique)"
    )
    status: SubscriptionStatus = Field(..., description="Current subscription status")

    current_period_start: Optional[datetime] = Field(None, description="Current billing period start (UTC)")
    current_period_end: Optional[datetime] = Field(None, description="Current billing period end (UTC)")

    created_at: datetime = Field(..., description="When the record was created (UTC)")
    updated_at: datetime = Field(..., description="Last write time (UTC, non-decreasing)")

    @field_validator("external_subscription_id")
    @classmethod
    def strip_external_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("external_subscription_id must not be blank")
        return value

    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    def set_status(
        self,
        new_status: SubscriptionStatus,
        reason: Optional[str] = None,
        log: bool = True,
    ) -> bool:
        """Change subscription status and log the transition.

        Args:
            new_status: Status to transition to
            reason: Reason for the status change
            log: Log the transition now; callers that have yet to persist the
                record pass False and log once the write succeeds

        Returns:
            True if the status changed
        """
        old_status = self.status
        if old_status == new_status:
            return False
        self.status = new_status
        if log:
            self.log_status_change(old_status, reason)
        return True

    def log_status_change(self, old_status: SubscriptionStatus, reason: Optional[str] = None) -> None:
        from subscription_sync.state_logger import log_subscription_status_change

        if old_status != self.status:
            log_subscription_status_change(
                external_subscription_id=self.external_subscription_id,
                old_status=old_status.value,
                new_status=self.status.value,
                reason=reason,
                record_id=self.id,
                user_id=self.user_id,
            )

    def refresh_period(
        self,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
    ) -> None:
        """Refresh billing period bounds that are present; absent ones are kept."""
        if period_start is not None:
            self.current_period_start = period_start
        if period_end is not None:
            self.current_period_end = period_end

    def touch(self, now: datetime) -> None:
        """Stamp updated_at, never moving it backwards."""
        self.updated_at = max(now, self.updated_at)

    class Config:
        json_schema_extra = {
            "example": {
                "id": 1,
                "user_id": "user-123",
                "plan_id": 7,
                "external_subscription_id": "sub_1PqRsT2eZvKYlo2C",
                "status": "ACTIVE",
                "current_period_start": "2026-10-01T00:00:00Z",
                "current_period_end": "2026-11-01T00:00:00Z",
                "created_at": "2026-10-01T00:00:05Z",
                "updated_at": "2026-10-01T00:00:05Z",
            }
        }
