"""Payment endpoints: cancellation and multi-card payments"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from splitpay_gateway.api.v1.schemas import (
    AllocationResultSchema,
    AllocationSchema,
    CancelRequest,
    CancelResponse,
    MultiCardCreateRequest,
    MultiCardCreateResponse,
    SettlementResponse,
    to_allocation_requests,
)
from splitpay_gateway.api.dependencies import get_provider_registry, get_request_id, parse_uuid
from splitpay_gateway.infrastructure.database.session import get_db
from splitpay_gateway.infrastructure.providers.registry import ProviderRegistry
from splitpay_gateway.domain.exceptions import AlreadyProcessedError, NotFoundError, ValidationError
from splitpay_gateway.services import reconciliation

router = APIRouter()


@router.post("/payments/cancel", response_model=CancelResponse)
def cancel_payment(
    request_body: CancelRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Cancel an unpaid payer; paid or already cancelled payers are rejected"""
    request_id = get_request_id(request)
    payer_id = parse_uuid(request_body.payer_id, "payer")
    collection_id = parse_uuid(request_body.collection_id, "collection")

    try:
        payer = reconciliation.cancel_payer(db, payer_id, collection_id, request_id=request_id)
    except AlreadyProcessedError as e:
        logging.info(f"Cancel rejected: {e}", extra={"request_id": request_id, "payer_id": str(payer_id)})
        raise HTTPException(status_code=404, detail=str(e))

    return CancelResponse(message="Payment cancelled successfully", payer_id=str(payer.id), status=payer.status)


@router.post("/payments/multi-card", response_model=MultiCardCreateResponse, status_code=201)
def create_multi_card_payment(
    request_body: MultiCardCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Split a payer's share across several payment methods"""
    request_id = get_request_id(request)

    try:
        allocations = to_allocation_requests(request_body.allocations, request_body.payment_methods)
        payment = reconciliation.create_multi_card_payment(
            db, request_body.payer_slug, allocations, request_id=request_id
        )

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    except AlreadyProcessedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    except ValidationError as e:
        logging.warning(f"Invalid multi-card request: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    return MultiCardCreateResponse(
        payment_id=str(payment.id),
        allocations=[
            AllocationSchema(
                allocation_id=str(a.id),
                payment_method=a.payment_method.name,
                provider=a.payment_method.provider,
                amount=a.amount,
                status=a.status,
            )
            for a in payment.allocations
        ],
        message="Multi-card payment created successfully",
    )


@router.post("/payments/multi-card/{payment_id}/process", response_model=SettlementResponse)
async def process_multi_card_payment(
    payment_id: str,
    request: Request,
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_provider_registry),
):
    """
    Settle each allocation with its provider.

    Provider failures are reported per allocation; the payer is only marked
    paid when every allocation succeeded.
    """
    request_id = get_request_id(request)
    payment_uuid = parse_uuid(payment_id, "payment")

    try:
        summary = await reconciliation.settle_multi_card_payment(
            db, payment_uuid, providers, request_id=request_id
        )

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    except AlreadyProcessedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    except Exception as e:
        logging.error(f"Multi-card processing error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to process multi-card payments")

    return SettlementResponse(
        payment_id=summary.payment_id,
        all_completed=summary.all_completed,
        results=[AllocationResultSchema(**vars(r)) for r in summary.results],
        message="All payments processed successfully" if summary.all_completed else "Some payments failed",
    )
