"""POST /v1/webhooks/stripe - provider event intake"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from splitpay_gateway.api.v1.schemas import WebhookAck
from splitpay_gateway.api.dependencies import get_request_id
from splitpay_gateway.config import settings
from splitpay_gateway.infrastructure.clients.stripe import construct_event, parse_unverified_event
from splitpay_gateway.infrastructure.database.session import get_db
from splitpay_gateway.infrastructure.observability.metrics import record_webhook_event
from splitpay_gateway.domain.exceptions import MissingMetadataError, NotFoundError, WebhookSignatureError
from splitpay_gateway.services.webhooks import dispatch_event

router = APIRouter()


@router.post("/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Apply a Stripe event.

    Delivery is at-least-once and unordered; handlers are idempotent. Events
    that can never be applied (missing metadata, unknown rows) are logged and
    acknowledged so the provider stops retrying. Unexpected failures return
    500 so it retries.
    """
    request_id = get_request_id(request)
    payload = await request.body()

    try:
        if settings.webhook_verify_signatures:
            event = construct_event(
                payload,
                request.headers.get("stripe-signature"),
                settings.stripe_webhook_secret,
                tolerance_seconds=settings.webhook_tolerance_seconds,
            )
        else:
            event = parse_unverified_event(payload)
    except WebhookSignatureError as e:
        record_webhook_event("unknown", "rejected")
        logging.warning(f"Webhook rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail="Invalid webhook")

    try:
        outcome = dispatch_event(db, event, request_id=request_id)

    except (MissingMetadataError, NotFoundError) as e:
        record_webhook_event(event.event_type, "dropped")
        logging.error(f"Webhook dropped: {e}", extra={"request_id": request_id, "event_id": event.event_id})
        return WebhookAck(outcome="dropped")

    except Exception as e:
        record_webhook_event(event.event_type, "error")
        logging.error(f"Webhook handler failed: {e}", extra={"request_id": request_id, "event_id": event.event_id})
        raise HTTPException(status_code=500, detail="Webhook handler failed")

    record_webhook_event(event.event_type, outcome)
    return WebhookAck(outcome=outcome)
