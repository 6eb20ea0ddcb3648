"""POST /v1/checkout - start a hosted checkout for a payer"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from splitpay_gateway.api.v1.schemas import CheckoutRequest, CheckoutResponse
from splitpay_gateway.api.dependencies import get_provider_registry, get_request_id
from splitpay_gateway.infrastructure.database.session import get_db
from splitpay_gateway.infrastructure.providers.registry import ProviderRegistry
from splitpay_gateway.domain.exceptions import AlreadyProcessedError, NotFoundError, ProviderError
from splitpay_gateway.services.checkout import create_checkout

router = APIRouter()


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    request_body: CheckoutRequest,
    request: Request,
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_provider_registry),
):
    request_id = get_request_id(request)

    try:
        charge = await create_checkout(db, request_body.payer_slug, providers, request_id=request_id)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    except AlreadyProcessedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    except ProviderError as e:
        logging.error(f"Checkout provider error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Payment provider unavailable")

    return CheckoutResponse(checkout_url=charge.checkout_url, session_id=charge.transaction_ref)
