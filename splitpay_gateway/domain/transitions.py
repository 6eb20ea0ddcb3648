"""Status transition rules for payers, payments and collections"""

from typing import Dict, Set

from splitpay_gateway.domain.exceptions import InvalidTransitionError
from splitpay_gateway.domain.models import CollectionStatus, PayerStatus, PaymentStatus

PAYER_TRANSITIONS: Dict[PayerStatus, Set[PayerStatus]] = {
    PayerStatus.UNPAID: {PayerStatus.PAID, PayerStatus.CANCELLED},
    PayerStatus.PAID: set(),
    PayerStatus.CANCELLED: set(),
}

# Shared by payments and allocations
PAYMENT_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.SUCCEEDED, PaymentStatus.FAILED},
    PaymentStatus.SUCCEEDED: set(),
    PaymentStatus.FAILED: set(),
}

COLLECTION_TRANSITIONS: Dict[CollectionStatus, Set[CollectionStatus]] = {
    CollectionStatus.PENDING: {
        CollectionStatus.PARTIAL,
        CollectionStatus.COMPLETED,
        CollectionStatus.CANCELLED,
    },
    CollectionStatus.PARTIAL: {
        CollectionStatus.PARTIAL,
        CollectionStatus.COMPLETED,
        CollectionStatus.CANCELLED,
    },
    CollectionStatus.COMPLETED: set(),
    CollectionStatus.CANCELLED: set(),
}


def assert_payer_transition(old: str, new: str) -> None:
    if PayerStatus(new) not in PAYER_TRANSITIONS[PayerStatus(old)]:
        raise InvalidTransitionError(f"Illegal payer transition: {old} -> {new}")


def assert_payment_transition(old: str, new: str) -> None:
    if PaymentStatus(new) not in PAYMENT_TRANSITIONS[PaymentStatus(old)]:
        raise InvalidTransitionError(f"Illegal payment transition: {old} -> {new}")


def assert_collection_transition(old: str, new: str) -> None:
    if old == new:
        return
    if CollectionStatus(new) not in COLLECTION_TRANSITIONS[CollectionStatus(old)]:
        raise InvalidTransitionError(f"Illegal collection transition: {old} -> {new}")


def derive_collection_status(current: str, unpaid_count: int, paid_count: int) -> CollectionStatus:
    """
    Recompute a collection's status from its payer counts.

    - no UNPAID payers left: COMPLETED if anyone paid, otherwise CANCELLED
    - UNPAID payers left and at least one PAID: PARTIAL
    - otherwise the current status stands (PENDING is never re-entered)
    """
    if unpaid_count == 0:
        return CollectionStatus.COMPLETED if paid_count > 0 else CollectionStatus.CANCELLED
    if paid_count > 0:
        return CollectionStatus.PARTIAL
    return CollectionStatus(current)


def resolve_payment_status(allocation_statuses) -> PaymentStatus:
    """
    All-or-nothing: SUCCEEDED only when every allocation succeeded, FAILED as
    soon as one failed, PENDING while any is still outstanding.
    """
    statuses = [PaymentStatus(s) for s in allocation_statuses]
    if any(s == PaymentStatus.FAILED for s in statuses):
        return PaymentStatus.FAILED
    if statuses and all(s == PaymentStatus.SUCCEEDED for s in statuses):
        return PaymentStatus.SUCCEEDED
    return PaymentStatus.PENDING
