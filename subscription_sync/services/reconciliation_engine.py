"""Subscription reconciliation engine.

Responsibilities:
- Apply provider-reported subscription status to local records, one event at a time
- Resolve create-vs-update ambiguity when events race the checkout call
- Resolve user and plan through the provider for webhook-first races
- Cancel stale ACTIVE duplicates when a new subscription activates
- Own every write to the subscription store

Ordering policy: the provider does not guarantee delivery order and events carry
no version, so the last event applied wins. Duplicate cleanup runs only on the
create path; an update never cancels another record.
"""

from datetime import datetime
from typing import Callable, Optional

from subscription_sync.errors import PlanNotFoundError, UserNotFoundError
from subscription_sync.logging_config import get_logger, reconciliation_context
from subscription_sync.models import PlanDefinition, UserRecord
from subscription_sync.models.events import ProviderSubscription, SubscriptionEvent
from subscription_sync.models.subscription import SubscriptionRecord, SubscriptionStatus
from subscription_sync.repositories.plan_repository import PlanRepository
from subscription_sync.repositories.subscription_store import (
    DuplicateSubscriptionError,
    StaleWriteError,
    SubscriptionStore,
)
from subscription_sync.repositories.user_repository import UserRepository
from subscription_sync.services.provider_client import ProviderClient
from subscription_sync.state_logger import log_duplicate_active_cleanup
from subscription_sync.utils.keyed_lock import KeyedLock
from subscription_sync.utils.timestamps import utc_now

logger = get_logger(__name__)


class ReconciliationEngine:
    """Turns an unordered, duplicated event stream into one record per subscription.

    Writes for one external subscription id are serialized; writes for different
    ids run concurrently. If two subscriptions of one user activate at the same
    time, the next create event for that user restores the single-active
    invariant.
    """

    def __init__(
        self,
        subscription_store: SubscriptionStore,
        user_repository: UserRepository,
        plan_repository: PlanRepository,
        provider_client: ProviderClient,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize reconciliation engine.

        Args:
            subscription_store: Subscription storage
            user_repository: User directory used to resolve customer emails
            plan_repository: Plan resolver used to resolve price ids
            provider_client: Payment provider lookups for webhook-first races
            clock: Source of timezone-aware UTC timestamps
        """
        self.store = subscription_store
        self.users = user_repository
        self.plans = plan_repository
        self.provider = provider_client
        self._clock = clock
        self._key_locks = KeyedLock()

        logger.info("reconciliation_engine_initialized")

    def apply(self, event: SubscriptionEvent) -> SubscriptionRecord:
        """Apply one provider-reported status to the store.

        Args:
            event: Normalized subscription event

        Returns:
            The record after the update or creation

        Raises:
            UserNotFoundError: No local user matches the customer (retryable)
            PlanNotFoundError: No plan matches the price id (retryable)
            ProviderUnavailableError: A provider lookup failed or timed out (retryable)
            ProviderResourceNotFoundError: The provider has no such subscription/customer
        """
        external_id = event.external_subscription_id
        with reconciliation_context(external_subscription_id=external_id), self._key_locks.hold(external_id):
            existing = self.store.find_by_external_id(event.external_subscription_id)
            if existing is not None:
                return self._update(existing, event)
            return self._create_from_event(event)

    def create_subscription(
        self,
        user: UserRecord,
        plan: PlanDefinition,
        event: SubscriptionEvent,
    ) -> SubscriptionRecord:
        """Create the record for a subscription whose user and plan are already known.

        Shared with checkout completion. If a webhook already created the record,
        the event is applied to it instead.

        Args:
            user: Owning user
            plan: Purchased plan
            event: Provider-reported state of the subscription

        Returns:
            The created (or updated) record
        """
        with self._key_locks.hold(event.external_subscription_id):
            existing = self.store.find_by_external_id(event.external_subscription_id)
            if existing is not None:
                logger.info(
                    "subscription_create_resolved_as_update",
                    external_subscription_id=event.external_subscription_id,
                    record_id=existing.id,
                )
                return self._update(existing, event)
            return self._insert(user, plan, event)

    def _update(self, record: SubscriptionRecord, event: SubscriptionEvent) -> SubscriptionRecord:
        """Update path: last observed write wins."""
        while True:
            old_status = record.status
            record.set_status(event.reported_status, log=False)
            record.refresh_period(event.period_start, event.period_end)
            record.touch(self._clock())
            try:
                stored = self.store.update(record)
                break
            except StaleWriteError:
                # A duplicate cleanup for another subscription wrote this record meanwhile
                logger.info(
                    "subscription_update_reread",
                    external_subscription_id=record.external_subscription_id,
                )
                record = self.store.get_by_external_id(record.external_subscription_id)

        stored.log_status_change(old_status, reason="Provider reported status")
        logger.info(
            "subscription_updated",
            record_id=stored.id,
            external_subscription_id=stored.external_subscription_id,
            user_id=stored.user_id,
            status=stored.status.value,
        )
        return stored

    def _create_from_event(self, event: SubscriptionEvent) -> SubscriptionRecord:
        """Create path for an event that references an unknown subscription."""
        logger.info(
            "subscription_unknown_creating",
            external_subscription_id=event.external_subscription_id,
            reported_status=event.reported_status.value,
            has_customer_email=bool(event.customer_email),
            customer_id=event.customer_id,
        )

        provider_subscription: Optional[ProviderSubscription] = None

        email = event.customer_email
        if not email:
            customer_id = event.customer_id
            if not customer_id:
                provider_subscription = self.provider.fetch_subscription(
                    event.external_subscription_id
                )
                customer_id = provider_subscription.customer_id
            if customer_id:
                email = self.provider.fetch_customer_email(customer_id)

        user = self.users.find_by_email(email)
        if user is None:
            logger.warning(
                "subscription_user_not_found",
                external_subscription_id=event.external_subscription_id,
            )
            raise UserNotFoundError(
                f"No user matches the customer of subscription {event.external_subscription_id}",
                retryable=True,
            )

        price_id = event.price_id
        if not price_id:
            if provider_subscription is None:
                provider_subscription = self.provider.fetch_subscription(
                    event.external_subscription_id
                )
            price_id = provider_subscription.price_id

        plan = self.plans.find_by_price_id(price_id) if price_id else None
        if plan is None:
            logger.warning(
                "subscription_plan_not_found",
                external_subscription_id=event.external_subscription_id,
                price_id=price_id,
            )
            raise PlanNotFoundError(
                f"No plan matches price {price_id!r} of subscription {event.external_subscription_id}",
                retryable=True,
            )

        return self._insert(user, plan, event)

    def _insert(
        self,
        user: UserRecord,
        plan: PlanDefinition,
        event: SubscriptionEvent,
    ) -> SubscriptionRecord:
        """Insert a new record, canceling the user's other ACTIVE records if it is ACTIVE."""
        now = self._clock()

        superseded = []
        if event.reported_status == SubscriptionStatus.ACTIVE:
            superseded = [
                r
                for r in self.store.find_active_by_user(user.id)
                if r.external_subscription_id != event.external_subscription_id
            ]

        record = SubscriptionRecord(
            id=self.store.next_id(),
            user_id=user.id,
            plan_id=plan.id,
            external_subscription_id=event.external_subscription_id,
            status=event.reported_status,
            current_period_start=event.period_start,
            current_period_end=event.period_end,
            created_at=now,
            updated_at=now,
        )

        try:
            canceled = self.store.add_superseding(record, superseded, now)
        except DuplicateSubscriptionError:
            # Another writer outside this engine inserted the same subscription
            existing = self.store.get_by_external_id(event.external_subscription_id)
            logger.warning(
                "subscription_insert_conflict",
                external_subscription_id=event.external_subscription_id,
                record_id=existing.id,
            )
            return self._update(existing, event)

        if canceled:
            log_duplicate_active_cleanup(
                user_id=user.id,
                kept_external_subscription_id=record.external_subscription_id,
                canceled_external_subscription_ids=[c.external_subscription_id for c in canceled],
            )

        logger.info(
            "subscription_created",
            record_id=record.id,
            external_subscription_id=record.external_subscription_id,
            user_id=user.id,
            plan_id=plan.id,
            status=record.status.value,
        )
        return record

    def get_current_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        """Get the user's ACTIVE record (the most recently updated one, if several)."""
        active = self.store.find_active_by_user(user_id)
        return active[0] if active else None

    def has_active_subscription(self, user_id: str) -> bool:
        return self.store.has_active(user_id)
