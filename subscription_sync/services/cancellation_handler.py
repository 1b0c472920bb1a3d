"""Subscription cancellation requested by the user."""

from subscription_sync.errors import NoActiveSubscriptionError, UserNotFoundError
from subscription_sync.logging_config import get_logger
from subscription_sync.models.events import SubscriptionEvent
from subscription_sync.models.subscription import SubscriptionRecord, SubscriptionStatus
from subscription_sync.services.reconciliation_engine import ReconciliationEngine

logger = get_logger(__name__)


class CancellationHandler:
    """Cancels a user's ACTIVE subscription at the provider, then locally.

    The local write goes through the reconciliation engine, so the
    customer.subscription.deleted webhook that follows is an idempotent update.
    """

    def __init__(self, engine: ReconciliationEngine):
        self.engine = engine

    def cancel_subscription(self, user_email: str) -> SubscriptionRecord:
        """Cancel the user's ACTIVE subscription.

        Args:
            user_email: Email of the user asking to cancel

        Returns:
            The CANCELED record

        Raises:
            UserNotFoundError: No user has this email
            NoActiveSubscriptionError: The user has nothing to cancel
            ProviderUnavailableError: The provider call failed or timed out
            ProviderResourceNotFoundError: The provider has no such subscription
        """
        user = self.engine.users.find_by_email(user_email)
        if user is None:
            raise UserNotFoundError(f"User not found: {user_email}", retryable=False)

        current = self.engine.get_current_subscription(user.id)
        if current is None:
            logger.info("cancellation_rejected_no_active_subscription", user_id=user.id)
            raise NoActiveSubscriptionError(f"User {user.id} has no active subscription")

        external_id = current.external_subscription_id
        logger.info("cancellation_started", user_id=user.id, external_subscription_id=external_id)

        # Local state only changes once the provider has canceled
        provider_subscription = self.engine.provider.cancel_subscription(external_id)
        event = SubscriptionEvent.from_provider_subscription(
            provider_subscription,
            customer_email=user.email,
            status=SubscriptionStatus.CANCELED,
        )
        record = self.engine.apply(event)

        logger.info(
            "cancellation_succeeded",
            record_id=record.id,
            user_id=user.id,
            external_subscription_id=external_id,
        )
        return record
