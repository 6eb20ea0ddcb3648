"""Lookup of provider adapters by name"""

from typing import Dict, Iterable

from splitpay_gateway.domain.exceptions import UnsupportedProviderError
from splitpay_gateway.infrastructure.providers.base import (
    PaymentProviderAdapter,
    UnavailableProviderAdapter,
)
from splitpay_gateway.infrastructure.providers.stripe import StripeAdapter


class ProviderRegistry:
    def __init__(self, adapters: Iterable[PaymentProviderAdapter] = ()):
        self._adapters: Dict[str, PaymentProviderAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: PaymentProviderAdapter) -> None:
        self._adapters[adapter.name] = adapter

    def get(self, provider: str) -> PaymentProviderAdapter:
        try:
            return self._adapters[provider]
        except KeyError:
            raise UnsupportedProviderError(provider) from None


def build_provider_registry() -> ProviderRegistry:
    """Stripe is live; the other listed wallets are placeholders"""
    return ProviderRegistry(
        [
            StripeAdapter(),
            UnavailableProviderAdapter("paypal", "PayPal"),
            UnavailableProviderAdapter("venmo", "Venmo"),
            UnavailableProviderAdapter("upi", "UPI"),
        ]
    )
