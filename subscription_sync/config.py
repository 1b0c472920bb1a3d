"""Configuration management - loads billing.yaml and environment variables."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from subscription_sync.models import BillingConfig, PlanDefinition, UserRecord
from subscription_sync.models.plan import ProviderSettings, WebhookSettings


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class Config:
    """Application configuration loader and manager.

    Loads billing.yaml and provides validated access to:
    - Plan catalog
    - Seed users
    - Provider client settings and credentials
    - Webhook settings and signing secret
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to billing.yaml file. If not provided, uses CONFIG_PATH env var
                        or defaults to ./config/billing.yaml
        """
        self._config_path = self._resolve_config_path(config_path)
        self._billing_config: Optional[BillingConfig] = None
        self._load_config()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path from argument, env var, or default."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("CONFIG_PATH")
        if env_path:
            return Path(env_path)

        return Path("config/billing.yaml")

    def _load_config(self) -> None:
        """Load and validate billing.yaml configuration."""
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/billing.yaml or set CONFIG_PATH environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}")

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")

        try:
            billing_config = BillingConfig(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}")

        self._check_unique_plans(billing_config.plans)
        self._billing_config = billing_config

    @staticmethod
    def _check_unique_plans(plans: list[PlanDefinition]) -> None:
        seen_ids = set()
        seen_prices = set()
        for plan in plans:
            if plan.id in seen_ids:
                raise ConfigurationError(f"Duplicate plan id in configuration: {plan.id}")
            if plan.external_price_id in seen_prices:
                raise ConfigurationError(
                    f"Duplicate external_price_id in configuration: {plan.external_price_id}"
                )
            seen_ids.add(plan.id)
            seen_prices.add(plan.external_price_id)

    @property
    def billing(self) -> BillingConfig:
        """Get validated billing configuration."""
        if self._billing_config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._billing_config

    @property
    def config_path(self) -> Path:
        """Get path to configuration file."""
        return self._config_path

    @property
    def plans(self) -> list[PlanDefinition]:
        return self.billing.plans

    @property
    def seed_users(self) -> list[UserRecord]:
        return self.billing.users

    @property
    def provider_settings(self) -> ProviderSettings:
        return self.billing.provider

    @property
    def webhook_settings(self) -> WebhookSettings:
        return self.billing.webhook

    @property
    def stripe_api_key(self) -> Optional[str]:
        """Get the provider API key from the configured environment variable.

        Returns:
            API key, or None if the variable is unset or empty
        """
        return os.getenv(self.provider_settings.api_key_env) or None

    @property
    def webhook_secret(self) -> Optional[str]:
        """Get the webhook signing secret from the configured environment variable.

        Returns:
            Signing secret, or None if the variable is unset or empty
        """
        return os.getenv(self.webhook_settings.secret_env) or None

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton).

    Args:
        config_path: Optional path to configuration file (only used on first call)

    Returns:
        Config instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_path)
    return _config_instance


def reset_config() -> None:
    """Drop the global configuration instance so the next call reloads it."""
    global _config_instance
    _config_instance = None
