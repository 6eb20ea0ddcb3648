"""Stripe checkout and payment intent calls, and webhook verification, through stripe-python"""

import json
import stripe
from typing import Any, Dict, Optional
from splitpay_gateway.domain.models import ProviderEvent
from splitpay_gateway.domain.exceptions import ProviderError, WebhookSignatureError
from splitpay_gateway.config import settings
from splitpay_gateway.infrastructure.observability.metrics import (
    provider_failure_counter,
    provider_latency_histogram,
)


class StripeClient:
    """Client for the Stripe checkout and payment intent APIs"""

    def __init__(
        self,
        api_base: str | None = None,
        secret_key: str | None = None,
        timeout: float | None = None,
        http_client: stripe.HTTPClient | None = None,
    ):
        self.api_base = api_base or settings.stripe_api_base
        self.secret_key = secret_key if secret_key is not None else settings.stripe_secret_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.http_client = http_client
        self._sdk: stripe.StripeClient | None = None

    @property
    def sdk(self) -> stripe.StripeClient:
        # Built on first use so the app starts without a configured key
        if self._sdk is None:
            self._sdk = stripe.StripeClient(
                self.secret_key,
                base_addresses={"api": self.api_base},
                http_client=self.http_client or stripe.HTTPXClient(timeout=self.timeout),
                max_network_retries=settings.stripe_max_network_retries,
            )
        return self._sdk

    async def _call(self, operation: str, create, params: Dict[str, Any]) -> stripe.StripeObject:
        """
        Run one SDK create call.

        Raises:
            ProviderError: Provider unreachable, timed out, or returned an error
        """
        try:
            with provider_latency_histogram.labels(provider="stripe", operation=operation).time():
                return await create(params=params)

        except stripe.APIConnectionError as e:
            provider_failure_counter.labels(provider="stripe").inc()
            raise ProviderError(f"Stripe API unreachable: {e}") from e
        except stripe.StripeError as e:
            provider_failure_counter.labels(provider="stripe").inc()
            detail = f" ({e.code})" if e.code else ""
            raise ProviderError(f"Stripe API error: {e.http_status}{detail}") from e

    async def create_checkout_session(
        self,
        amount: int,
        currency: str,
        product_name: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> stripe.StripeObject:
        """Create a one-item card checkout session; returns id, url and payment_intent"""
        return await self._call(
            "checkout",
            self.sdk.v1.checkout.sessions.create_async,
            {
                "mode": "payment",
                "payment_method_types": ["card"],
                "line_items": [
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "product_data": {"name": product_name, "description": description},
                            "unit_amount": amount,
                        },
                        "quantity": 1,
                    }
                ],
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata,
            },
        )

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
    ) -> stripe.StripeObject:
        return await self._call(
            "payment_intent",
            self.sdk.v1.payment_intents.create_async,
            {"amount": amount, "currency": currency.lower(), "metadata": metadata},
        )


def construct_event(
    payload: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance_seconds: int = 300,
) -> ProviderEvent:
    """
    Verify a Stripe-Signature header and normalise the event.

    Raises:
        WebhookSignatureError: Missing/malformed header, mismatch, stale
            timestamp, or a body that is not a Stripe event
    """
    if not signature_header:
        raise WebhookSignatureError("Missing signature header")

    try:
        event = stripe.Webhook.construct_event(payload, signature_header, secret, tolerance=tolerance_seconds)
    except stripe.SignatureVerificationError as e:
        raise WebhookSignatureError(str(e)) from e
    except (ValueError, AttributeError, TypeError) as e:
        raise WebhookSignatureError(f"Invalid webhook body: {e}") from e

    return to_provider_event(event)


def parse_unverified_event(payload: bytes) -> ProviderEvent:
    """Normalise an event body without checking its signature (local development only)"""
    try:
        event = stripe.Event.construct_from(json.loads(payload), None)
    except (ValueError, AttributeError, TypeError) as e:
        raise WebhookSignatureError(f"Invalid webhook body: {e}") from e
    return to_provider_event(event)


def to_provider_event(event: stripe.Event) -> ProviderEvent:
    """
    Map a Stripe event onto a ProviderEvent.

    Checkout sessions are referenced by their payment intent when present;
    everything else by the object id.
    """
    try:
        event_type = event["type"]
        obj = event["data"]["object"]

        if event_type == "checkout.session.completed":
            transaction_ref = obj.get("payment_intent") or obj.get("id")
            amount = obj.get("amount_total")
        else:
            transaction_ref = obj.get("id")
            amount = obj.get("amount")

        last_error = obj.get("last_payment_error") or {}
        return ProviderEvent(
            event_id=event.get("id", ""),
            event_type=event_type,
            transaction_ref=transaction_ref,
            metadata=dict(obj.get("metadata") or {}),
            amount=amount,
            failure_reason=last_error.get("message"),
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise WebhookSignatureError(f"Invalid webhook body: {e}") from e
