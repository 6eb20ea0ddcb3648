"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from splitpay_gateway.config import settings
from splitpay_gateway.domain.exceptions import ValidationError
from splitpay_gateway.domain.models import AllocationRequest, PaymentMethodSpec


class PaymentMethodIn(BaseModel):
    """Client-side payment method referenced by allocation keys"""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: str = "card"
    provider: str = Field(..., min_length=1)


class CollectionCreateRequest(BaseModel):
    """Request body for POST /v1/collections"""

    title: str = Field(..., description="Bill title, truncated to 100 characters")
    total_amount: int = Field(..., description="Total in minor currency units (paise/cents)")
    num_payers: int = Field(..., description="Number of payers, 1-100")
    payment_mode: str = Field("split", description="split | self-pay")
    payer_names: List[str] = Field(default_factory=list)
    payer_emails: List[Optional[str]] = Field(default_factory=list)
    custom_amounts: Optional[List[int]] = Field(None, description="Explicit shares, must sum to total_amount")
    creator_email: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    allocations: Dict[str, int] = Field(default_factory=dict, description="payment method id -> amount (self-pay)")
    payment_methods: List[PaymentMethodIn] = Field(default_factory=list)


class PayerLink(BaseModel):
    payer_id: str
    name: str
    email: Optional[str] = None
    share_amount: int
    status: str
    link: str


class CollectionResponse(BaseModel):
    """Response for POST/GET /v1/collections"""

    collection_id: str
    title: str
    total_amount: int
    currency: str
    num_payers: int
    status: str
    created_at: str
    creator_email: Optional[str] = None
    links: List[PayerLink]
    payment_id: Optional[str] = None


class PaymentSchema(BaseModel):
    payment_id: str
    provider: str
    provider_ref: Optional[str] = None
    amount: int
    status: str
    is_multi_card: bool


class CollectionSummary(BaseModel):
    collection_id: str
    title: str
    total_amount: int
    currency: str
    status: str


class PayerResponse(BaseModel):
    """Response for GET /v1/payers/{slug}"""

    payer_id: str
    name: str
    email: Optional[str] = None
    share_amount: int
    status: str
    pay_link_slug: str
    collection: CollectionSummary
    latest_payment: Optional[PaymentSchema] = None


class CheckoutRequest(BaseModel):
    payer_slug: str = Field(..., min_length=1)


class CheckoutResponse(BaseModel):
    checkout_url: Optional[str] = None
    session_id: str


class CancelRequest(BaseModel):
    payer_id: str = Field(..., min_length=1)
    collection_id: str = Field(..., min_length=1)


class CancelResponse(BaseModel):
    message: str
    payer_id: str
    status: str


class MultiCardCreateRequest(BaseModel):
    """Request body for POST /v1/payments/multi-card"""

    payer_slug: str = Field(..., min_length=1)
    allocations: Dict[str, int]
    payment_methods: List[PaymentMethodIn]


class AllocationSchema(BaseModel):
    allocation_id: str
    payment_method: str
    provider: str
    amount: int
    status: str


class MultiCardCreateResponse(BaseModel):
    payment_id: str
    allocations: List[AllocationSchema]
    message: str


class AllocationResultSchema(BaseModel):
    allocation_id: str
    method: str
    provider: str
    success: bool
    provider_ref: Optional[str] = None
    error: Optional[str] = None


class SettlementResponse(BaseModel):
    """Response for POST /v1/payments/multi-card/{payment_id}/process"""

    payment_id: str
    all_completed: bool
    results: List[AllocationResultSchema]
    message: str


class WebhookAck(BaseModel):
    received: bool = True
    outcome: str


class PayoutItem(BaseModel):
    payer_id: str
    payer_name: str
    payer_email: Optional[str] = None
    amount: int
    collection_id: str
    collection_title: str
    status: str


class PayoutsResponse(BaseModel):
    """Response for GET /v1/payouts"""

    user_id: str
    payouts: List[PayoutItem]


class PayoutRecordRequest(BaseModel):
    payer_id: str = Field(..., min_length=1)
    payout_method: str = Field(..., min_length=1)
    payout_reference: Optional[str] = None


class PayoutRecordResponse(BaseModel):
    success: bool
    message: str
    payout_reference: str


def pay_link(slug: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}/pay/{slug}"


def to_allocation_requests(
    allocations: Dict[str, int],
    payment_methods: List[PaymentMethodIn],
) -> List[AllocationRequest]:
    """
    Resolve {method id: amount} against the submitted methods.

    Zero amounts are unused method slots and are skipped.

    Raises:
        ValidationError: An allocation references a method that was not submitted
    """
    methods = {m.id: m for m in payment_methods}
    requests = []
    for method_id, amount in allocations.items():
        if amount == 0:
            continue
        method = methods.get(method_id)
        if method is None:
            raise ValidationError(f"Unknown payment method: {method_id}")
        requests.append(
            AllocationRequest(
                method=PaymentMethodSpec(name=method.name, type=method.type, provider=method.provider),
                amount=amount,
            )
        )
    return requests
