"""Domain models - pure Python dataclasses and status enums for bill splitting"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class CollectionStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PayerStatus(str, Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """Shared by payments and their allocations"""

    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class PaymentMode(str, Enum):
    SPLIT = "split"
    SELF_PAY = "self-pay"


MULTI_CARD_PROVIDER = "multi-card"


@dataclass
class PaymentMethodSpec:
    """Payment method as described by the client (name, type, provider)"""

    name: str
    type: str
    provider: str


@dataclass
class AllocationRequest:
    """Portion of a payer's share routed through one payment method"""

    method: PaymentMethodSpec
    amount: int


@dataclass
class PayerSpec:
    """Payer to be created at collection creation time"""

    name: str
    share_amount: int
    email: Optional[str] = None


@dataclass
class ChargeResult:
    """Outcome of asking a provider to create a charge or checkout"""

    transaction_ref: str
    checkout_url: Optional[str] = None


@dataclass
class SettlementRequest:
    """Everything an adapter needs to settle one allocation"""

    allocation_id: str
    payment_id: str
    payer_id: str
    amount: int
    currency: str


@dataclass
class SettlementOutcome:
    """Result of settling a single allocation with its provider"""

    success: bool
    provider_ref: Optional[str] = None
    error: Optional[str] = None


@dataclass
class AllocationResult:
    """Per-allocation line in a multi-card settlement summary"""

    allocation_id: str
    method: str
    provider: str
    success: bool
    provider_ref: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SettlementSummary:
    """Aggregated outcome of a multi-card settlement"""

    payment_id: str
    all_completed: bool
    results: List[AllocationResult] = field(default_factory=list)

    @property
    def failed(self) -> List[AllocationResult]:
        return [r for r in self.results if not r.success]


@dataclass
class ProviderEvent:
    """Provider webhook event normalised to the fields reconciliation needs"""

    event_id: str
    event_type: str
    transaction_ref: Optional[str]
    metadata: Dict[str, Any]
    amount: Optional[int] = None
    failure_reason: Optional[str] = None
