"""Payout overview for collection creators"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from splitpay_gateway.domain.exceptions import NotFoundError
from splitpay_gateway.infrastructure.database.repositories import PayerRepository
from splitpay_gateway.utils.date_utils import epoch_millis

logger = logging.getLogger(__name__)


@dataclass
class PayoutLine:
    payer_id: str
    payer_name: str
    payer_email: Optional[str]
    amount: int
    collection_id: str
    collection_title: str
    status: str = "PENDING"


def list_pending_payouts(db: Session, creator_id: uuid.UUID) -> List[PayoutLine]:
    """Every PAID payer in the creator's collections with a positive settled total"""
    lines = []
    for payer, total_paid in PayerRepository(db).list_paid_for_creator(creator_id):
        if total_paid <= 0:
            continue
        lines.append(
            PayoutLine(
                payer_id=str(payer.id),
                payer_name=payer.name,
                payer_email=payer.email,
                amount=total_paid,
                collection_id=str(payer.collection_id),
                collection_title=payer.collection.title,
            )
        )
    return lines


def record_payout(
    db: Session,
    payer_id: uuid.UUID,
    payout_method: str,
    payout_reference: Optional[str] = None,
    request_id: Optional[str] = None,
) -> str:
    """Acknowledge a payout made outside the system; returns its reference"""
    if PayerRepository(db).get_by_id(payer_id) is None:
        raise NotFoundError("Payer not found")

    reference = payout_reference or f"PAYOUT-{epoch_millis()}"
    logger.info(
        "Payout recorded",
        extra={
            "request_id": request_id,
            "payer_id": str(payer_id),
            "payout_method": payout_method,
            "payout_reference": reference,
        },
    )
    return reference
