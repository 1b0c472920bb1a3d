"""Payment provider client.

Responsibilities:
- Fetch subscription details by external subscription id
- Fetch a customer's email by customer id
- Cancel a subscription immediately
- Translate provider errors into retryable / not-found errors

The client is a plain instance created from configuration and passed to the
services that need it; no module-level API key is ever set.
"""

from typing import Optional, Protocol

import stripe
from pydantic import ValidationError

from subscription_sync.config import Config, ConfigurationError
from subscription_sync.errors import (
    InvalidEventError,
    ProviderResourceNotFoundError,
    ProviderUnavailableError,
)
from subscription_sync.logging_config import get_logger
from subscription_sync.models.events import ProviderSubscription, parse_stripe_subscription

logger = get_logger(__name__)


class ProviderClient(Protocol):
    """Lookup contract the reconciliation engine needs from a payment provider."""

    def fetch_subscription(self, external_id: str) -> ProviderSubscription: ...

    def fetch_customer_email(self, customer_id: str) -> Optional[str]: ...

    def cancel_subscription(self, external_id: str) -> ProviderSubscription: ...


class StripeProviderClient:
    """Stripe implementation of the provider lookups.

    Each instance owns its own ``stripe.StripeClient``. Calls are bounded by the
    configured HTTP timeout; a timeout surfaces as ProviderUnavailableError.
    """

    def __init__(
        self,
        api_key: str,
        timeout_seconds: float = 10.0,
        max_network_retries: int = 2,
        stripe_client: Optional[stripe.StripeClient] = None,
    ):
        """Initialize provider client.

        Args:
            api_key: Stripe secret key
            timeout_seconds: HTTP timeout per request
            max_network_retries: Client-side retries on network errors
            stripe_client: Preconfigured client (mainly for tests)
        """
        if stripe_client is None:
            if not api_key:
                raise ConfigurationError("Stripe API key is not configured")
            stripe_client = stripe.StripeClient(
                api_key,
                max_network_retries=max_network_retries,
                http_client=stripe.RequestsClient(timeout=timeout_seconds),
            )
        self._client = stripe_client
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, config: Config) -> "StripeProviderClient":
        settings = config.provider_settings
        api_key = config.stripe_api_key
        if not api_key:
            raise ConfigurationError(
                f"Stripe API key not found; set the {settings.api_key_env} environment variable"
            )
        return cls(
            api_key=api_key,
            timeout_seconds=settings.timeout_seconds,
            max_network_retries=settings.max_network_retries,
        )

    def fetch_subscription(self, external_id: str) -> ProviderSubscription:
        """Fetch a subscription from Stripe.

        Args:
            external_id: Stripe subscription id (sub_...)

        Returns:
            Normalized ProviderSubscription

        Raises:
            ProviderResourceNotFoundError: If Stripe has no such subscription
            ProviderUnavailableError: On transport errors, rate limiting or timeouts
            InvalidEventError: If Stripe reports a status this service does not know
        """
        try:
            subscription = self._client.subscriptions.retrieve(external_id)
        except stripe.StripeError as e:
            raise self._translate_error(e, "subscription", external_id)

        result = self._parse_subscription(subscription, external_id)
        logger.debug(
            "provider_subscription_fetched",
            external_subscription_id=external_id,
            status=result.status.value,
            price_id=result.price_id,
        )
        return result

    def fetch_customer_email(self, customer_id: str) -> Optional[str]:
        """Fetch a customer's email from Stripe.

        Args:
            customer_id: Stripe customer id (cus_...)

        Returns:
            Email address, or None for deleted customers and customers without one

        Raises:
            ProviderResourceNotFoundError: If Stripe has no such customer
            ProviderUnavailableError: On transport errors, rate limiting or timeouts
        """
        try:
            customer = self._client.customers.retrieve(customer_id)
        except stripe.StripeError as e:
            raise self._translate_error(e, "customer", customer_id)

        values = customer.to_dict()
        if values.get("deleted"):
            logger.info("provider_customer_deleted", customer_id=customer_id)
            return None
        return values.get("email") or None

    def cancel_subscription(self, external_id: str) -> ProviderSubscription:
        """Cancel a subscription at Stripe, effective immediately.

        Args:
            external_id: Stripe subscription id (sub_...)

        Returns:
            The subscription as Stripe reports it after cancellation

        Raises:
            ProviderResourceNotFoundError: If Stripe has no such subscription
            ProviderUnavailableError: On transport errors, rate limiting or timeouts
        """
        try:
            subscription = self._client.subscriptions.cancel(external_id)
        except stripe.StripeError as e:
            raise self._translate_error(e, "subscription", external_id)

        result = self._parse_subscription(subscription, external_id)
        logger.info(
            "provider_subscription_canceled",
            external_subscription_id=external_id,
            status=result.status.value,
        )
        return result

    @staticmethod
    def _parse_subscription(subscription: stripe.Subscription, external_id: str) -> ProviderSubscription:
        # StripeObject is not a dict in current releases of the library
        try:
            return parse_stripe_subscription(subscription.to_dict())
        except ValidationError as e:
            raise InvalidEventError(f"Unusable subscription {external_id} from provider: {e}")

    def _translate_error(self, error: stripe.StripeError, resource: str, resource_id: str):
        if isinstance(error, stripe.InvalidRequestError) and error.http_status == 404:
            logger.warning(
                "provider_resource_not_found",
                resource=resource,
                resource_id=resource_id,
                error=str(error),
            )
            return ProviderResourceNotFoundError(f"Provider has no {resource} {resource_id}")

        logger.error(
            "provider_request_failed",
            resource=resource,
            resource_id=resource_id,
            error=str(error),
            error_type=type(error).__name__,
            http_status=getattr(error, "http_status", None),
            timeout_seconds=self._timeout_seconds,
        )
        return ProviderUnavailableError(
            f"Provider request for {resource} {resource_id} failed: {type(error).__name__}"
        )
