"""Tests for CheckoutCompletionHandler."""

import pytest

from subscription_sync.errors import (
    AlreadyActiveError,
    PlanNotFoundError,
    ProviderResourceNotFoundError,
    ProviderUnavailableError,
    UserNotFoundError,
)
from subscription_sync.models.subscription import SubscriptionStatus


class TestCompleteCheckout:
    """Test the synchronous checkout path."""

    def test_creates_active_record(self, checkout_handler, store, provider):
        """Test checkout for a@x.com, plan 7, sub_100."""
        provider.add_subscription("sub_100", status="active")

        record = checkout_handler.complete_checkout("a@x.com", 7, "sub_100")

        assert record.user_id == "user-a"
        assert record.plan_id == 7
        assert record.external_subscription_id == "sub_100"
        assert record.status == SubscriptionStatus.ACTIVE
        assert record.current_period_end is not None
        assert store.count() == 1

    def test_records_provider_reported_status(self, checkout_handler, provider):
        provider.add_subscription("sub_100", status="incomplete")

        record = checkout_handler.complete_checkout("a@x.com", 7, "sub_100")

        assert record.status == SubscriptionStatus.INCOMPLETE

    def test_unknown_user_is_final(self, checkout_handler, store, provider):
        provider.add_subscription("sub_100")

        with pytest.raises(UserNotFoundError) as exc_info:
            checkout_handler.complete_checkout("ghost@x.com", 7, "sub_100")

        assert exc_info.value.retryable is False
        assert provider.subscription_calls == []
        assert store.count() == 0

    def test_unknown_user_retryable_when_caller_asks(self, checkout_handler, provider):
        provider.add_subscription("sub_100")

        with pytest.raises(UserNotFoundError) as exc_info:
            checkout_handler.complete_checkout("late@x.com", 7, "sub_100", retryable=True)

        assert exc_info.value.retryable is True

    def test_already_active_rejected(self, checkout_handler, store, provider):
        provider.add_subscription("sub_100")
        provider.add_subscription("sub_101")
        checkout_handler.complete_checkout("a@x.com", 7, "sub_100")

        with pytest.raises(AlreadyActiveError) as exc_info:
            checkout_handler.complete_checkout("a@x.com", 8, "sub_101")

        assert exc_info.value.retryable is False
        assert store.count() == 1
        assert not store.exists("sub_101")

    def test_user_with_only_canceled_records_can_resubscribe(self, checkout_handler, engine, store, provider, make_event):
        """Test that CANCELED is not terminal for the user."""
        provider.add_subscription("sub_100")
        provider.add_subscription("sub_101")
        checkout_handler.complete_checkout("a@x.com", 7, "sub_100")
        engine.apply(make_event("sub_100", "canceled"))

        record = checkout_handler.complete_checkout("a@x.com", 7, "sub_101")

        assert record.status == SubscriptionStatus.ACTIVE
        assert store.count() == 2

    def test_unknown_plan_is_final(self, checkout_handler, store, provider):
        provider.add_subscription("sub_100")

        with pytest.raises(PlanNotFoundError) as exc_info:
            checkout_handler.complete_checkout("a@x.com", 999, "sub_100")

        assert exc_info.value.retryable is False
        assert store.count() == 0

    def test_provider_unavailable_writes_nothing(self, checkout_handler, store, provider):
        provider.fail_with("sub_100", ProviderUnavailableError("timeout"))

        with pytest.raises(ProviderUnavailableError):
            checkout_handler.complete_checkout("a@x.com", 7, "sub_100")

        assert store.count() == 0

    def test_unknown_provider_subscription(self, checkout_handler, store):
        with pytest.raises(ProviderResourceNotFoundError):
            checkout_handler.complete_checkout("a@x.com", 7, "sub_missing")
        assert store.count() == 0

    def test_price_mismatch_keeps_requested_plan(self, checkout_handler, provider):
        provider.add_subscription("sub_100", price_id="price_premium_yearly")

        record = checkout_handler.complete_checkout("a@x.com", 7, "sub_100")

        assert record.plan_id == 7

    def test_webhook_already_created_record(self, checkout_handler, engine, store, provider, make_event):
        """Test checkout after the webhook won the race with a non-active status."""
        provider.add_subscription("sub_100", status="active")
        webhook_record = engine.apply(
            make_event("sub_100", "incomplete", customer_email="a@x.com", price_id="price_premium_monthly")
        )

        record = checkout_handler.complete_checkout("a@x.com", 7, "sub_100")

        assert record.id == webhook_record.id
        assert record.status == SubscriptionStatus.ACTIVE
        assert store.count() == 1
