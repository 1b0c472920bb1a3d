"""Entry point for running the service as a module."""

import argparse
import os
import sys

import uvicorn

from subscription_sync.config import Config, ConfigurationError


def check_config(config_path: str) -> int:
    """Validate billing.yaml and the Stripe secrets it names.

    Returns:
        Process exit code: 0 when the service could start and take webhooks
    """
    try:
        config = Config(config_path)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    active_plans = [p for p in config.plans if p.is_active]
    print(f"Config: {config.config_path}")
    print(f"Plans: {len(config.plans)} ({len(active_plans)} offered)")
    for plan in config.plans:
        state = "active" if plan.is_active else "inactive"
        print(f"  {plan.id}: {plan.name} [{plan.external_price_id}] {state}")
    print(f"Seed users: {len(config.seed_users)}")

    missing = []
    if not config.stripe_api_key:
        missing.append(config.provider_settings.api_key_env)
    if not config.webhook_secret:
        missing.append(config.webhook_settings.secret_env)
    if missing:
        print(f"Missing environment variables: {', '.join(missing)}", file=sys.stderr)
        return 1

    print("Stripe API key and webhook secret: set")
    return 0


def main() -> None:
    """Main entry point for the subscription sync service."""
    parser = argparse.ArgumentParser(
        description="Subscription Sync - Reconciles local subscriptions with Stripe"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8080")),
        help="Port to bind to (default: 8080)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=os.getenv("LOG_FORMAT", "json"),
        help="Log output format (default: json)",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "config/billing.yaml"),
        help="Path to billing.yaml configuration file (default: config/billing.yaml)",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Validate the configuration and Stripe secrets, then exit",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() == "true",
        help="Enable auto-reload for development (default: false)",
    )

    args = parser.parse_args()

    if args.check_config:
        sys.exit(check_config(args.config))

    # Read again by create_app() inside the server process
    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["LOG_FORMAT"] = args.log_format
    os.environ["CONFIG_PATH"] = args.config

    if args.log_format == "console":
        print("=" * 60)
        print("Subscription Sync v0.1.0")
        print("=" * 60)
        print(f"Listening: http://{args.host}:{args.port}")
        print("Webhook endpoint: /api/webhooks/stripe")
        print(f"Log Level: {args.log_level}")
        print(f"Config: {args.config}")
        print("=" * 60)

    try:
        uvicorn.run(
            "subscription_sync.main:create_app",
            factory=True,
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            reload=args.reload,
            access_log=False,  # RequestLoggingMiddleware logs requests
        )
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")
        sys.exit(0)
    except Exception as e:
        print(f"Failed to start service: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
