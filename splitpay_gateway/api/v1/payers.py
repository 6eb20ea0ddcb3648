"""GET /v1/payers/{slug} - payment link lookup"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from splitpay_gateway.api.v1.schemas import CollectionSummary, PayerResponse, PaymentSchema
from splitpay_gateway.infrastructure.database.session import get_db
from splitpay_gateway.infrastructure.database.repositories import PaymentRepository
from splitpay_gateway.domain.exceptions import NotFoundError
from splitpay_gateway.services.reconciliation import get_payer_by_slug

router = APIRouter()


@router.get("/payers/{slug}", response_model=PayerResponse)
def get_payer(slug: str, db: Session = Depends(get_db)):
    """
    Resolve a payment link to its payer, collection and latest payment.

    The stored payer status is authoritative.
    """
    try:
        payer = get_payer_by_slug(db, slug)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Payer not found")

    latest = PaymentRepository(db).latest_for_payer(payer.id)
    collection = payer.collection

    return PayerResponse(
        payer_id=str(payer.id),
        name=payer.name,
        email=payer.email,
        share_amount=payer.share_amount,
        status=payer.status,
        pay_link_slug=payer.pay_link_slug,
        collection=CollectionSummary(
            collection_id=str(collection.id),
            title=collection.title,
            total_amount=collection.total_amount,
            currency=collection.currency,
            status=collection.status,
        ),
        latest_payment=(
            PaymentSchema(
                payment_id=str(latest.id),
                provider=latest.provider,
                provider_ref=latest.provider_ref,
                amount=latest.amount,
                status=latest.status,
                is_multi_card=latest.is_multi_card,
            )
            if latest
            else None
        ),
    )
