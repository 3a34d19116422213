"""Webhook endpoints for external services."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from creditwise.api.dependencies import get_services
from creditwise.exceptions import WebhookPayloadError, WebhookSignatureError
from creditwise.logging_config import get_logger
from creditwise.services import Services

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request, services: Services = Depends(get_services)):
    """Handle Stripe webhook events.

    Verifies the signature, then mirrors subscriptions and completes
    referrals. Replays are safe: upserts are keyed by subscription id and a
    referral only completes once. Processing failures return 500 so Stripe
    redelivers; events whose owner cannot be resolved are acknowledged.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = services.gateway.construct_event(payload, sig_header)
    except (WebhookSignatureError, WebhookPayloadError) as e:
        logger.warning("stripe_webhook_invalid", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        outcome = await run_in_threadpool(services.synchronizer.handle_event, event)
    except WebhookPayloadError as e:
        logger.warning("stripe_webhook_payload_rejected", event_id=event.id, event_type=event.type, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error("stripe_webhook_error", event_id=event.id, event_type=event.type, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error processing webhook",
        )

    logger.info(
        "stripe_webhook_processed",
        event_id=event.id,
        event_type=event.type,
        api_version=event.api_version,
        outcome=outcome,
    )
    return {"received": True, "outcome": outcome}
