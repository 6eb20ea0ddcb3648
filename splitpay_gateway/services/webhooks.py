"""Dispatch of normalised provider webhook events to state transitions"""

import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from splitpay_gateway.domain.exceptions import MissingMetadataError
from splitpay_gateway.domain.models import ProviderEvent
from splitpay_gateway.services.reconciliation import apply_allocation_event, complete_checkout

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


def _metadata_id(event: ProviderEvent, key: str) -> uuid.UUID:
    value = event.metadata.get(key)
    if not value:
        raise MissingMetadataError(f"Missing {key} in {event.event_type} metadata")
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise MissingMetadataError(f"Invalid {key} in {event.event_type} metadata: {value}") from None


def dispatch_event(db: Session, event: ProviderEvent, request_id: Optional[str] = None) -> str:
    """
    Apply one provider event. Safe to call repeatedly with the same event.

    Returns:
        "processed" when state changed, "ignored" for duplicates and
        event types this service does not act on

    Raises:
        MissingMetadataError: Event cannot be tied to a payer or payment
        NotFoundError: Metadata points at rows that do not exist
    """
    if event.event_type == CHECKOUT_COMPLETED:
        payer_id = _metadata_id(event, "payerId")
        collection_id = _metadata_id(event, "collectionId")
        changed = complete_checkout(
            db,
            payer_id=payer_id,
            collection_id=collection_id,
            provider_ref=event.transaction_ref,
            amount=event.amount,
            request_id=request_id,
        )
        return "processed" if changed else "ignored"

    if event.event_type in (PAYMENT_SUCCEEDED, PAYMENT_FAILED):
        # Intents created by hosted checkout carry no allocation; checkout completion covers them
        if not event.metadata.get("allocationId"):
            return "ignored"

        allocation_id = _metadata_id(event, "allocationId")
        payment_id = _metadata_id(event, "paymentId")
        status = apply_allocation_event(
            db,
            payment_id=payment_id,
            allocation_id=allocation_id,
            succeeded=event.event_type == PAYMENT_SUCCEEDED,
            provider_ref=event.transaction_ref,
            failure_reason=event.failure_reason,
            request_id=request_id,
        )
        return "ignored" if status is None else "processed"

    logger.info(f"Unhandled event type: {event.event_type}", extra={"request_id": request_id})
    return "ignored"
