"""GET/POST /v1/payouts - what creators are owed from settled payers"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from splitpay_gateway.api.v1.schemas import (
    PayoutItem,
    PayoutRecordRequest,
    PayoutRecordResponse,
    PayoutsResponse,
)
from splitpay_gateway.api.dependencies import get_request_id, parse_uuid
from splitpay_gateway.infrastructure.database.session import get_db
from splitpay_gateway.domain.exceptions import NotFoundError
from splitpay_gateway.services.payouts import list_pending_payouts, record_payout

router = APIRouter()


@router.get("/payouts", response_model=PayoutsResponse)
def get_payouts(
    user_id: str = Query(..., description="Creator user identifier"),
    db: Session = Depends(get_db),
):
    creator_id = parse_uuid(user_id, "user")
    lines = list_pending_payouts(db, creator_id)
    return PayoutsResponse(user_id=user_id, payouts=[PayoutItem(**vars(line)) for line in lines])


@router.post("/payouts", response_model=PayoutRecordResponse)
def mark_payout(
    request_body: PayoutRecordRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    payer_id = parse_uuid(request_body.payer_id, "payer")
    try:
        reference = record_payout(
            db,
            payer_id,
            request_body.payout_method,
            request_body.payout_reference,
            request_id=get_request_id(request),
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return PayoutRecordResponse(success=True, message="Payout marked as completed", payout_reference=reference)
