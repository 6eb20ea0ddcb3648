"""Payment provider adapter interface"""

from abc import ABC, abstractmethod
from typing import Dict

from splitpay_gateway.domain.models import ChargeResult, SettlementOutcome, SettlementRequest
from splitpay_gateway.domain.exceptions import ProviderError


class PaymentProviderAdapter(ABC):
    """One variant per payment provider, selected by PaymentMethod.provider"""

    name: str

    @abstractmethod
    async def create_charge(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        description: str = "",
    ) -> ChargeResult:
        """
        Start a charge for the full amount.

        Raises:
            ProviderError: Provider rejected the request or is unavailable
        """

    @abstractmethod
    async def settle(self, request: SettlementRequest) -> SettlementOutcome:
        """Settle one multi-card allocation. Failures are returned, not raised."""


class UnavailableProviderAdapter(PaymentProviderAdapter):
    """Provider the product lists but has no integration for yet"""

    def __init__(self, name: str, display_name: str):
        self.name = name
        self.display_name = display_name

    async def create_charge(self, amount, currency, metadata, description=""):
        raise ProviderError(f"{self.display_name} integration not implemented yet")

    async def settle(self, request: SettlementRequest) -> SettlementOutcome:
        return SettlementOutcome(
            success=False,
            error=f"{self.display_name} integration not implemented yet",
        )
