"""Hosted checkout for a single payer's share"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from splitpay_gateway.domain.exceptions import AlreadyProcessedError
from splitpay_gateway.domain.models import ChargeResult, PayerStatus
from splitpay_gateway.infrastructure.providers.registry import ProviderRegistry
from splitpay_gateway.services.reconciliation import get_payer_by_slug

logger = logging.getLogger(__name__)


async def create_checkout(
    db: Session,
    payer_slug: str,
    providers: ProviderRegistry,
    provider: str = "stripe",
    request_id: Optional[str] = None,
) -> ChargeResult:
    """
    Start a provider checkout for the payer's full share.

    The payer and collection ids travel in the charge metadata so the
    completion webhook can find them again.

    Raises:
        NotFoundError: Unknown slug
        AlreadyProcessedError: Payer already PAID or CANCELLED
        ProviderError: Provider rejected the charge or is unavailable
    """
    payer = get_payer_by_slug(db, payer_slug)
    if payer.status == PayerStatus.PAID.value:
        raise AlreadyProcessedError("Payment already completed")
    if payer.status == PayerStatus.CANCELLED.value:
        raise AlreadyProcessedError("Payment was cancelled")

    collection = payer.collection
    charge = await providers.get(provider).create_charge(
        amount=payer.share_amount,
        currency=collection.currency,
        metadata={
            "payerId": str(payer.id),
            "collectionId": str(collection.id),
            "payerSlug": payer.pay_link_slug,
            "collectionTitle": collection.title,
        },
        description=f"Payment for {payer.name} - Split payment",
    )

    logger.info(
        "Checkout created",
        extra={"request_id": request_id, "payer_id": str(payer.id), "transaction_ref": charge.transaction_ref},
    )
    return charge
