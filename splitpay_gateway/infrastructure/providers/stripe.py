"""Stripe adapter: checkout sessions for single payers, payment intents for allocations"""

import logging
from typing import Dict

from splitpay_gateway.config import settings
from splitpay_gateway.domain.exceptions import ProviderError
from splitpay_gateway.domain.models import ChargeResult, SettlementOutcome, SettlementRequest
from splitpay_gateway.infrastructure.clients.stripe import StripeClient
from splitpay_gateway.infrastructure.providers.base import PaymentProviderAdapter

logger = logging.getLogger(__name__)


class StripeAdapter(PaymentProviderAdapter):
    name = "stripe"

    def __init__(self, client: StripeClient | None = None, app_base_url: str | None = None):
        self.client = client or StripeClient()
        self.app_base_url = (app_base_url or settings.app_base_url).rstrip("/")

    async def create_charge(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        description: str = "",
    ) -> ChargeResult:
        """Hosted checkout; the payer is sent back to their pay link afterwards"""
        slug = metadata.get("payerSlug", "")
        session = await self.client.create_checkout_session(
            amount=amount,
            currency=currency,
            product_name=metadata.get("collectionTitle") or "Split payment",
            description=description,
            success_url=f"{self.app_base_url}/pay/{slug}?success=true",
            cancel_url=f"{self.app_base_url}/pay/{slug}?canceled=true",
            metadata={k: v for k, v in metadata.items() if k != "collectionTitle"},
        )
        return ChargeResult(transaction_ref=session["id"], checkout_url=session.get("url"))

    async def settle(self, request: SettlementRequest) -> SettlementOutcome:
        # A created intent counts as settled; confirmation arrives via payment_intent webhooks
        try:
            intent = await self.client.create_payment_intent(
                amount=request.amount,
                currency=request.currency,
                metadata={
                    "allocationId": request.allocation_id,
                    "paymentId": request.payment_id,
                    "payerId": request.payer_id,
                },
            )
        except ProviderError as e:
            logger.warning(f"Stripe settlement failed for allocation {request.allocation_id}: {e}")
            return SettlementOutcome(success=False, error=str(e))

        return SettlementOutcome(success=True, provider_ref=intent["id"])
