"""POST/GET /v1/collections - create and list bill-splitting collections"""

import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from splitpay_gateway.api.v1.schemas import (
    CollectionCreateRequest,
    CollectionResponse,
    PayerLink,
    pay_link,
    to_allocation_requests,
)
from splitpay_gateway.api.dependencies import get_request_id, parse_uuid
from splitpay_gateway.infrastructure.database.models import Collection
from splitpay_gateway.infrastructure.database.session import get_db
from splitpay_gateway.domain.exceptions import NotFoundError, SlugGenerationError, ValidationError
from splitpay_gateway.services import reconciliation

router = APIRouter()


def to_collection_response(collection: Collection) -> CollectionResponse:
    multi_card = next((p for p in collection.payments if p.is_multi_card), None)
    return CollectionResponse(
        collection_id=str(collection.id),
        title=collection.title,
        total_amount=collection.total_amount,
        currency=collection.currency,
        num_payers=collection.num_payers,
        status=collection.status,
        created_at=collection.created_at.isoformat(),
        creator_email=collection.creator.email if collection.creator else None,
        links=[
            PayerLink(
                payer_id=str(p.id),
                name=p.name,
                email=p.email,
                share_amount=p.share_amount,
                status=p.status,
                link=pay_link(p.pay_link_slug),
            )
            for p in collection.payers
        ],
        payment_id=str(multi_card.id) if multi_card else None,
    )


@router.post("/collections", response_model=CollectionResponse, status_code=201)
def create_collection(
    request_body: CollectionCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Create a collection and one payment link per payer.

    Modes:
    - split: equal split (first payers absorb the remainder) or custom_amounts
    - self-pay: a single payer holds the total, optionally across several cards
    """
    request_id = get_request_id(request)

    try:
        allocations = to_allocation_requests(request_body.allocations, request_body.payment_methods)
        collection = reconciliation.create_collection(
            db,
            title=request_body.title,
            total_amount=request_body.total_amount,
            num_payers=request_body.num_payers,
            mode=request_body.payment_mode,
            payer_names=request_body.payer_names,
            payer_emails=request_body.payer_emails,
            custom_amounts=request_body.custom_amounts,
            creator_email=request_body.creator_email,
            currency=request_body.currency,
            allocations=allocations or None,
            request_id=request_id,
        )
        return to_collection_response(collection)

    except ValidationError as e:
        logging.warning(f"Invalid collection request: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except SlugGenerationError as e:
        logging.error(f"Slug generation failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Could not issue payment links, retry")

    except IntegrityError as e:
        logging.warning(f"Collection creation conflict: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail="Conflicting write, retry")


@router.get("/collections", response_model=List[CollectionResponse])
def list_collections(db: Session = Depends(get_db)):
    """Most recent collections with their payment links"""
    return [to_collection_response(c) for c in reconciliation.list_collections(db)]


@router.get("/collections/{collection_id}", response_model=CollectionResponse)
def get_collection(collection_id: str, db: Session = Depends(get_db)):
    collection_uuid = parse_uuid(collection_id, "collection")
    try:
        collection = reconciliation.get_collection(db, collection_uuid)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return to_collection_response(collection)
