"""Subscription API for the buyer-facing flow.

Implements:
- POST /api/subscriptions/checkout/complete - Record a completed checkout
- POST /api/subscriptions/cancel - Cancel the user's active subscription
- GET /api/subscriptions/current - Current ACTIVE subscription of a user
- GET /api/subscriptions/status - Whether a user has an ACTIVE subscription
- GET /api/subscriptions/plans - Plans currently offered

Handlers are plain functions so FastAPI runs them on its threadpool; the
reconciliation engine blocks on locks and provider calls.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from subscription_sync.dependencies import ServiceContainer, get_services
from subscription_sync.logging_config import get_logger
from subscription_sync.models import (
    CancelSubscriptionRequest,
    CheckoutCompleteRequest,
    PlanListResponse,
    SubscriptionResponse,
    SubscriptionStatusResponse,
)

logger = get_logger(__name__)
router = APIRouter(tags=["Subscriptions"], prefix="/api/subscriptions")


@router.post(
    "/checkout/complete",
    response_model=SubscriptionResponse,
    status_code=201,
    summary="Record a completed checkout",
)
def complete_checkout(
    request: CheckoutCompleteRequest,
    services: ServiceContainer = Depends(get_services),
) -> SubscriptionResponse:
    """Create the subscription record right after a successful payment.

    Raises:
        404: User, plan or provider subscription not found
        409: User already has an active subscription
        503: Payment provider unavailable
    """
    record = services.checkout_handler.complete_checkout(
        user_email=request.user_email,
        plan_id=request.plan_id,
        external_subscription_id=request.external_subscription_id,
    )
    plan = services.plan_repository.find_by_id(record.plan_id)
    return SubscriptionResponse.from_record(record, plan)


@router.post(
    "/cancel",
    response_model=SubscriptionResponse,
    summary="Cancel the active subscription",
)
def cancel_subscription(
    request: CancelSubscriptionRequest,
    services: ServiceContainer = Depends(get_services),
) -> SubscriptionResponse:
    """Cancel at the provider, then mark the local record CANCELED.

    Raises:
        404: Unknown user, no active subscription, or unknown at the provider
        503: Payment provider unavailable
    """
    record = services.cancellation_handler.cancel_subscription(request.user_email)
    plan = services.plan_repository.find_by_id(record.plan_id)
    return SubscriptionResponse.from_record(record, plan)


@router.get(
    "/current",
    response_model=SubscriptionResponse,
    summary="Get current subscription",
)
def get_current_subscription(
    email: str = Query(..., min_length=3, description="User email"),
    services: ServiceContainer = Depends(get_services),
) -> SubscriptionResponse:
    """Return the user's ACTIVE subscription.

    Raises:
        404: Unknown user or no active subscription
    """
    user = services.user_repository.find_by_email(email)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "user_not_found", "message": "No user with this email"},
        )

    record = services.engine.get_current_subscription(user.id)
    if record is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "no_active_subscription", "message": "No active subscription found"},
        )

    plan = services.plan_repository.find_by_id(record.plan_id)
    return SubscriptionResponse.from_record(record, plan)


@router.get(
    "/status",
    response_model=SubscriptionStatusResponse,
    summary="Check for an active subscription",
)
def get_subscription_status(
    email: str = Query(..., min_length=3, description="User email"),
    services: ServiceContainer = Depends(get_services),
) -> SubscriptionStatusResponse:
    """Report whether the user has an ACTIVE subscription; unknown users have none."""
    user = services.user_repository.find_by_email(email)
    has_active = user is not None and services.engine.has_active_subscription(user.id)
    return SubscriptionStatusResponse(email=email, has_active_subscription=has_active)


@router.get(
    "/plans",
    response_model=PlanListResponse,
    summary="List active plans",
)
def list_plans(services: ServiceContainer = Depends(get_services)) -> PlanListResponse:
    return PlanListResponse(plans=services.plan_repository.get_active_plans())
