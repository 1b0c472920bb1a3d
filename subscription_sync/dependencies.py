"""Service wiring.

Builds one set of collaborators per application instance and hands them to the
routes through FastAPI dependencies instead of module-level singletons.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from subscription_sync.config import Config
from subscription_sync.repositories.plan_repository import PlanRepository
from subscription_sync.repositories.subscription_store import SubscriptionStore
from subscription_sync.repositories.user_repository import UserRepository
from subscription_sync.services.cancellation_handler import CancellationHandler
from subscription_sync.services.checkout_handler import CheckoutCompletionHandler
from subscription_sync.services.provider_client import ProviderClient, StripeProviderClient
from subscription_sync.services.reconciliation_engine import ReconciliationEngine
from subscription_sync.services.webhook_dispatcher import WebhookDispatcher


@dataclass
class ServiceContainer:
    """Everything a request handler may need."""

    config: Config
    subscription_store: SubscriptionStore
    user_repository: UserRepository
    plan_repository: PlanRepository
    engine: ReconciliationEngine
    checkout_handler: CheckoutCompletionHandler
    cancellation_handler: CancellationHandler
    webhook_dispatcher: WebhookDispatcher


def build_services(
    config: Config,
    provider_client: Optional[ProviderClient] = None,
    subscription_store: Optional[SubscriptionStore] = None,
    user_repository: Optional[UserRepository] = None,
) -> ServiceContainer:
    """Build the service graph from configuration.

    Args:
        config: Loaded configuration
        provider_client: Provider client (defaults to a Stripe client from config)
        subscription_store: Subscription storage (defaults to a new empty store)
        user_repository: User directory (defaults to the users seeded in config)

    Returns:
        ServiceContainer
    """
    store = subscription_store or SubscriptionStore()
    users = user_repository or UserRepository(config.seed_users)
    plans = PlanRepository.from_config(config)
    provider = provider_client or StripeProviderClient.from_config(config)

    engine = ReconciliationEngine(
        subscription_store=store,
        user_repository=users,
        plan_repository=plans,
        provider_client=provider,
    )
    checkout_handler = CheckoutCompletionHandler(engine)
    cancellation_handler = CancellationHandler(engine)
    dispatcher = WebhookDispatcher(engine, checkout_handler)

    return ServiceContainer(
        config=config,
        subscription_store=store,
        user_repository=users,
        plan_repository=plans,
        engine=engine,
        checkout_handler=checkout_handler,
        cancellation_handler=cancellation_handler,
        webhook_dispatcher=dispatcher,
    )


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the application's services."""
    return request.app.state.services
