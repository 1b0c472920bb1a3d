"""Webhook receiver for payment provider events.

Implements:
- POST /api/webhooks/stripe - Verify, parse and dispatch a Stripe event

Retryable failures propagate to the application's error handler, which answers
503 so Stripe redelivers. Everything else is acknowledged with 200.
"""

from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from subscription_sync.dependencies import ServiceContainer, get_services
from subscription_sync.logging_config import get_logger
from subscription_sync.models import WebhookAckResponse, WebhookEnvelope

logger = get_logger(__name__)
router = APIRouter(tags=["Webhooks"], prefix="/api/webhooks")


@router.post(
    "/stripe",
    response_model=WebhookAckResponse,
    summary="Receive Stripe webhook event",
)
async def receive_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    services: ServiceContainer = Depends(get_services),
) -> WebhookAckResponse:
    """Receive one Stripe event.

    Raises:
        400: Missing or invalid signature, or malformed event
        500: Webhook secret not configured
        503: Retryable failure (provider will redeliver)
    """
    body = await request.body()
    try:
        payload = body.decode("utf-8")
    except UnicodeDecodeError as e:
        logger.warning("webhook_payload_not_utf8", error=str(e))
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_payload", "message": "Event payload is not valid UTF-8"},
        )

    secret = services.config.webhook_secret
    if not secret:
        logger.error("webhook_secret_not_configured", secret_env=services.config.webhook_settings.secret_env)
        raise HTTPException(
            status_code=500,
            detail={"error": "webhook_not_configured", "message": "Webhook signing secret is not configured"},
        )

    if not stripe_signature:
        logger.warning("webhook_signature_missing")
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_signature", "message": "Missing Stripe-Signature header"},
        )

    try:
        stripe.WebhookSignature.verify_header(
            payload,
            stripe_signature,
            secret,
            tolerance=services.config.webhook_settings.tolerance_seconds,
        )
    except stripe.SignatureVerificationError as e:
        logger.warning("webhook_signature_invalid", error=str(e))
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_signature", "message": "Invalid signature"},
        )

    try:
        envelope = WebhookEnvelope.model_validate_json(payload)
    except ValidationError as e:
        logger.warning("webhook_payload_invalid", error=str(e))
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_payload", "message": "Malformed event payload"},
        )

    result = await run_in_threadpool(services.webhook_dispatcher.dispatch, envelope)

    return WebhookAckResponse(
        event_id=result.event_id,
        event_type=result.event_type,
        applied=result.applied,
        outcome=result.outcome.value,
        error=result.error,
    )
