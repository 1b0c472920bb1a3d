"""Shared fixtures: fake provider, repositories and a wired reconciliation engine."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from subscription_sync.config import Config
from subscription_sync.errors import ProviderResourceNotFoundError
from subscription_sync.models import PlanDefinition, UserRecord
from subscription_sync.models.events import ProviderSubscription, SubscriptionEvent
from subscription_sync.models.subscription import SubscriptionStatus
from subscription_sync.repositories.plan_repository import PlanRepository
from subscription_sync.repositories.subscription_store import SubscriptionStore
from subscription_sync.repositories.user_repository import UserRepository
from subscription_sync.services.cancellation_handler import CancellationHandler
from subscription_sync.services.checkout_handler import CheckoutCompletionHandler
from subscription_sync.services.reconciliation_engine import ReconciliationEngine
from subscription_sync.services.webhook_dispatcher import WebhookDispatcher

PERIOD_START = 1790000000
PERIOD_END = 1792592000


class FakeProviderClient:
    """In-memory stand-in for the Stripe provider client."""

    def __init__(self):
        self.subscriptions: Dict[str, ProviderSubscription] = {}
        self.customer_emails: Dict[str, Optional[str]] = {}
        self.errors: Dict[str, Exception] = {}
        self.subscription_calls: List[str] = []
        self.customer_calls: List[str] = []
        self.cancel_calls: List[str] = []

    def add_subscription(
        self,
        external_id: str,
        status: str = "active",
        customer_id: Optional[str] = "cus_a",
        price_id: Optional[str] = "price_premium_monthly",
        period_start: Optional[int] = PERIOD_START,
        period_end: Optional[int] = PERIOD_END,
    ) -> ProviderSubscription:
        subscription = ProviderSubscription(
            external_id=external_id,
            status=status,
            customer_id=customer_id,
            price_id=price_id,
            period_start=period_start,
            period_end=period_end,
        )
        self.subscriptions[external_id] = subscription
        return subscription

    def add_customer(self, customer_id: str, email: Optional[str]) -> None:
        self.customer_emails[customer_id] = email

    def fail_with(self, resource_id: str, error: Exception) -> None:
        self.errors[resource_id] = error

    def fetch_subscription(self, external_id: str) -> ProviderSubscription:
        self.subscription_calls.append(external_id)
        if external_id in self.errors:
            raise self.errors[external_id]
        if external_id not in self.subscriptions:
            raise ProviderResourceNotFoundError(f"Provider has no subscription {external_id}")
        return self.subscriptions[external_id]

    def fetch_customer_email(self, customer_id: str) -> Optional[str]:
        self.customer_calls.append(customer_id)
        if customer_id in self.errors:
            raise self.errors[customer_id]
        if customer_id not in self.customer_emails:
            raise ProviderResourceNotFoundError(f"Provider has no customer {customer_id}")
        return self.customer_emails[customer_id]

    def cancel_subscription(self, external_id: str) -> ProviderSubscription:
        self.cancel_calls.append(external_id)
        if external_id in self.errors:
            raise self.errors[external_id]
        if external_id not in self.subscriptions:
            raise ProviderResourceNotFoundError(f"Provider has no subscription {external_id}")
        canceled = self.subscriptions[external_id].model_copy(update={"status": SubscriptionStatus.CANCELED})
        self.subscriptions[external_id] = canceled
        return canceled


class SteppingClock:
    """Clock that advances one second per reading."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 10, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def plans():
    """Plan catalog used across tests."""
    return [
        PlanDefinition(
            id=7,
            name="Premium Monthly",
            external_price_id="price_premium_monthly",
            duration_months=1,
        ),
        PlanDefinition(
            id=8,
            name="Premium Yearly",
            external_price_id="price_premium_yearly",
            duration_months=12,
        ),
        PlanDefinition(
            id=9,
            name="Legacy Quarterly",
            external_price_id="price_legacy_quarterly",
            duration_months=3,
            is_active=False,
        ),
    ]


@pytest.fixture
def plan_repository(plans):
    return PlanRepository(plans)


@pytest.fixture
def user_a():
    return UserRecord(id="user-a", email="a@x.com", first_name="Ada")


@pytest.fixture
def user_b():
    return UserRecord(id="user-b", email="b@x.com")


@pytest.fixture
def user_repository(user_a, user_b):
    return UserRepository([user_a, user_b])


@pytest.fixture
def store():
    """Create a fresh SubscriptionStore instance for testing."""
    store = SubscriptionStore()
    yield store
    store.clear()


@pytest.fixture
def provider():
    provider = FakeProviderClient()
    provider.add_customer("cus_a", "a@x.com")
    provider.add_customer("cus_b", "b@x.com")
    return provider


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def engine(store, user_repository, plan_repository, provider, clock):
    return ReconciliationEngine(
        subscription_store=store,
        user_repository=user_repository,
        plan_repository=plan_repository,
        provider_client=provider,
        clock=clock,
    )


@pytest.fixture
def checkout_handler(engine):
    return CheckoutCompletionHandler(engine)


@pytest.fixture
def cancellation_handler(engine):
    return CancellationHandler(engine)


@pytest.fixture
def dispatcher(engine, checkout_handler):
    return WebhookDispatcher(engine, checkout_handler)


@pytest.fixture
def make_event():
    """Factory for SubscriptionEvents with sensible defaults."""

    def _make_event(
        external_subscription_id: str = "sub_100",
        reported_status: str = "ACTIVE",
        **overrides,
    ) -> SubscriptionEvent:
        return SubscriptionEvent(
            external_subscription_id=external_subscription_id,
            reported_status=reported_status,
            **overrides,
        )

    return _make_event


BILLING_YAML = """
plans:
  - id: 7
    name: Premium Monthly
    external_price_id: price_premium_monthly
    duration_months: 1
  - id: 8
    name: Premium Yearly
    external_price_id: price_premium_yearly
    duration_months: 12
  - id: 9
    name: Legacy Quarterly
    external_price_id: price_legacy_quarterly
    duration_months: 3
    is_active: false
users:
  - id: user-a
    email: a@x.com
  - id: user-b
    email: b@x.com
provider:
  api_key_env: STRIPE_API_KEY
  timeout_seconds: 5
  max_network_retries: 1
webhook:
  secret_env: STRIPE_WEBHOOK_SECRET
  tolerance_seconds: 300
"""


@pytest.fixture
def billing_config_path(tmp_path):
    path = tmp_path / "billing.yaml"
    path.write_text(BILLING_YAML, encoding="utf-8")
    return path


@pytest.fixture
def billing_config(billing_config_path):
    """Config loaded from a temporary billing.yaml."""
    return Config(str(billing_config_path))
