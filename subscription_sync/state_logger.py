"""Status change logging for subscription records.

Tracks transitions with before/after values for debugging and auditing.
"""

from typing import Any, List, Optional

from subscription_sync.logging_config import get_logger

logger = get_logger(__name__)


def log_subscription_status_change(
    external_subscription_id: str,
    old_status: Any,
    new_status: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a subscription status change.

    Args:
        external_subscription_id: Provider subscription id
        old_status: Previous status value
        new_status: New status value
        reason: Reason for the change
        **extra_context: Additional context (record_id, user_id, etc.)
    """
    logger.info(
        "subscription_status_changed",
        external_subscription_id=external_subscription_id,
        old_status=str(old_status),
        new_status=str(new_status),
        reason=reason,
        **extra_context,
    )


def log_duplicate_active_cleanup(
    user_id: str,
    kept_external_subscription_id: str,
    canceled_external_subscription_ids: List[str],
) -> None:
    """Log a duplicate-active cleanup that canceled older ACTIVE records.

    Args:
        user_id: User whose records were cleaned up
        kept_external_subscription_id: The newly activated subscription
        canceled_external_subscription_ids: Subscriptions moved to CANCELED
    """
    logger.warning(
        "duplicate_active_subscriptions_canceled",
        user_id=user_id,
        kept_external_subscription_id=kept_external_subscription_id,
        canceled_external_subscription_ids=canceled_external_subscription_ids,
        canceled_count=len(canceled_external_subscription_ids),
    )
