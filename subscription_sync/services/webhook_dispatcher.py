"""Webhook event routing.

Responsibilities:
- Route verified Stripe events to the reconciliation engine or checkout completion
- Normalize Stripe subscription objects into SubscriptionEvents
- Propagate retryable failures so the provider redelivers
- Report non-retryable rejections and unhandled event types without dropping them silently
"""

from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from subscription_sync.errors import AlreadyActiveError, InvalidEventError, ReconciliationError
from subscription_sync.logging_config import get_logger, reconciliation_context
from subscription_sync.models.events import (
    SubscriptionEvent,
    WebhookEnvelope,
    expandable_id,
    parse_stripe_subscription,
)
from subscription_sync.models.subscription import SubscriptionRecord, SubscriptionStatus
from subscription_sync.services.checkout_handler import CheckoutCompletionHandler
from subscription_sync.services.reconciliation_engine import ReconciliationEngine

logger = get_logger(__name__)


class DispatchOutcome(str, Enum):
    """What happened to a delivered event."""

    APPLIED = "applied"
    IGNORED = "ignored"
    REJECTED = "rejected"


class DispatchResult(BaseModel):
    """Result of dispatching one webhook event."""

    event_id: str
    event_type: str
    outcome: DispatchOutcome
    record: Optional[SubscriptionRecord] = None
    error: Optional[str] = Field(None, description="Error code for rejected events")

    @property
    def applied(self) -> bool:
        return self.outcome == DispatchOutcome.APPLIED


class WebhookDispatcher:
    """Routes webhook envelopes by event type."""

    def __init__(self, engine: ReconciliationEngine, checkout_handler: CheckoutCompletionHandler):
        self.engine = engine
        self.checkout_handler = checkout_handler
        self._handlers: Dict[str, Callable[[WebhookEnvelope], DispatchResult]] = {
            "customer.subscription.created": self._handle_subscription_changed,
            "customer.subscription.updated": self._handle_subscription_changed,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "checkout.session.completed": self._handle_checkout_session_completed,
            "invoice.payment_succeeded": self._handle_invoice,
            "invoice.payment_failed": self._handle_invoice,
        }

    @property
    def handled_event_types(self) -> list[str]:
        return sorted(self._handlers)

    def dispatch(self, envelope: WebhookEnvelope) -> DispatchResult:
        """Dispatch one verified event.

        Args:
            envelope: Verified webhook event

        Returns:
            DispatchResult describing whether the event was applied, ignored or rejected

        Raises:
            ReconciliationError: If the failure is retryable; the transport must
                answer with an error so the provider redelivers
        """
        with reconciliation_context(event_id=envelope.id, event_type=envelope.type):
            handler = self._handlers.get(envelope.type)
            if handler is None:
                logger.info("webhook_event_unhandled")
                return self._result(envelope, DispatchOutcome.IGNORED)

            try:
                result = handler(envelope)
            except ReconciliationError as e:
                if e.retryable:
                    logger.warning("webhook_event_failed_retryable", error=e.code, message=e.message)
                    raise
                logger.warning("webhook_event_rejected", error=e.code, message=e.message)
                return self._result(envelope, DispatchOutcome.REJECTED, error=e.code)

            logger.info("webhook_event_dispatched", outcome=result.outcome.value)
            return result

    def _handle_subscription_changed(self, envelope: WebhookEnvelope) -> DispatchResult:
        event = self._subscription_event(envelope.payload)
        record = self.engine.apply(event)
        return self._result(envelope, DispatchOutcome.APPLIED, record=record)

    def _handle_subscription_deleted(self, envelope: WebhookEnvelope) -> DispatchResult:
        # A deleted subscription is canceled whatever status the payload carries
        payload = dict(envelope.payload, status=SubscriptionStatus.CANCELED.value)
        event = self._subscription_event(payload)
        record = self.engine.apply(event)
        return self._result(envelope, DispatchOutcome.APPLIED, record=record)

    def _handle_checkout_session_completed(self, envelope: WebhookEnvelope) -> DispatchResult:
        session = envelope.payload

        if session.get("mode") != "subscription":
            logger.info("checkout_session_not_subscription", mode=session.get("mode"))
            return self._result(envelope, DispatchOutcome.IGNORED)

        raw_plan_id = (session.get("metadata") or {}).get("plan_id")
        if raw_plan_id is None:
            logger.warning("checkout_session_missing_plan_id", session_id=session.get("id"))
            return self._result(envelope, DispatchOutcome.IGNORED)

        try:
            plan_id = int(raw_plan_id)
        except (TypeError, ValueError):
            raise InvalidEventError(f"Invalid plan_id in checkout session metadata: {raw_plan_id!r}")

        email = session.get("customer_email") or (session.get("customer_details") or {}).get("email")
        subscription_id = expandable_id(session.get("subscription"))
        if not email or not subscription_id:
            raise InvalidEventError("Checkout session lacks a customer email or subscription id")

        try:
            record = self.checkout_handler.complete_checkout(
                email, plan_id, subscription_id, retryable=True
            )
        except AlreadyActiveError:
            if self.engine.store.exists(subscription_id):
                logger.info("checkout_session_already_recorded", external_subscription_id=subscription_id)
                return self._result(envelope, DispatchOutcome.IGNORED)
            raise

        return self._result(envelope, DispatchOutcome.APPLIED, record=record)

    def _handle_invoice(self, envelope: WebhookEnvelope) -> DispatchResult:
        # Invoice outcomes reach us again as customer.subscription.updated
        invoice = envelope.payload
        logger.info(
            "invoice_event_acknowledged",
            invoice_id=invoice.get("id"),
            external_subscription_id=expandable_id(invoice.get("subscription")),
        )
        return self._result(envelope, DispatchOutcome.IGNORED)

    @staticmethod
    def _subscription_event(payload: Mapping[str, Any]) -> SubscriptionEvent:
        try:
            subscription = parse_stripe_subscription(payload)
        except ValidationError as e:
            raise InvalidEventError(f"Unusable subscription object in event: {e}")
        return SubscriptionEvent.from_provider_subscription(subscription)

    @staticmethod
    def _result(
        envelope: WebhookEnvelope,
        outcome: DispatchOutcome,
        record: Optional[SubscriptionRecord] = None,
        error: Optional[str] = None,
    ) -> DispatchResult:
        return DispatchResult(
            event_id=envelope.id,
            event_type=envelope.type,
            outcome=outcome,
            record=record,
            error=error,
        )
