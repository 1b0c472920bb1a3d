"""Checkout completion - synchronous entry point right after a purchase."""

from subscription_sync.errors import AlreadyActiveError, PlanNotFoundError, UserNotFoundError
from subscription_sync.logging_config import get_logger
from subscription_sync.models.events import SubscriptionEvent
from subscription_sync.models.subscription import SubscriptionRecord
from subscription_sync.services.reconciliation_engine import ReconciliationEngine

logger = get_logger(__name__)


class CheckoutCompletionHandler:
    """Creates the first record of a freshly purchased subscription.

    Called directly after a purchase, a missing user or plan is final: the
    caller has just paid, so it indicates a bug rather than a race. The
    checkout.session.completed webhook may arrive before the user or plan is
    committed and passes retryable=True so the provider redelivers.
    """

    def __init__(self, engine: ReconciliationEngine):
        self.engine = engine

    def complete_checkout(
        self,
        user_email: str,
        plan_id: int,
        external_subscription_id: str,
        retryable: bool = False,
    ) -> SubscriptionRecord:
        """Record a completed checkout.

        Args:
            user_email: Email of the paying user
            plan_id: Internal id of the purchased plan
            external_subscription_id: Provider subscription id created by the checkout
            retryable: Whether a missing user or plan may resolve on redelivery

        Returns:
            The created record

        Raises:
            UserNotFoundError: No user has this email
            AlreadyActiveError: The user already has an ACTIVE subscription
            ProviderUnavailableError: The provider lookup failed or timed out
            ProviderResourceNotFoundError: The provider has no such subscription
            PlanNotFoundError: plan_id is not in the catalog
        """
        logger.info(
            "checkout_completion_started",
            plan_id=plan_id,
            external_subscription_id=external_subscription_id,
        )

        user = self.engine.users.find_by_email(user_email)
        if user is None:
            logger.error("checkout_user_not_found", external_subscription_id=external_subscription_id)
            raise UserNotFoundError(f"User not found: {user_email}", retryable=retryable)

        if self.engine.has_active_subscription(user.id):
            logger.info(
                "checkout_rejected_already_active",
                user_id=user.id,
                external_subscription_id=external_subscription_id,
            )
            raise AlreadyActiveError(f"User {user.id} already has an active subscription")

        provider_subscription = self.engine.provider.fetch_subscription(external_subscription_id)

        plan = self.engine.plans.find_by_id(plan_id)
        if plan is None:
            logger.error("checkout_plan_not_found", plan_id=plan_id)
            raise PlanNotFoundError(f"Subscription plan not found: {plan_id}", retryable=retryable)

        if provider_subscription.price_id and provider_subscription.price_id != plan.external_price_id:
            logger.warning(
                "checkout_price_mismatch",
                plan_id=plan.id,
                plan_price_id=plan.external_price_id,
                provider_price_id=provider_subscription.price_id,
            )

        event = SubscriptionEvent.from_provider_subscription(
            provider_subscription, customer_email=user.email
        )
        record = self.engine.create_subscription(user, plan, event)

        logger.info(
            "checkout_completion_succeeded",
            record_id=record.id,
            user_id=user.id,
            status=record.status.value,
        )
        return record
