"""Split allocation - integer share arithmetic for collections and multi-card payments"""

from typing import List, Optional, Sequence

from splitpay_gateway.domain.exceptions import SplitValidationError
from splitpay_gateway.domain.models import AllocationRequest, PaymentMode

MIN_PAYERS = 1
MAX_PAYERS = 100


def _is_int(value) -> bool:
    # bool is an int subclass but never a valid amount
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_total(total_amount: int) -> None:
    if not _is_int(total_amount) or total_amount <= 0:
        raise SplitValidationError("total_amount must be a positive integer in minor currency units")


def _validate_num_payers(num_payers: int) -> None:
    if not _is_int(num_payers) or not MIN_PAYERS <= num_payers <= MAX_PAYERS:
        raise SplitValidationError(f"num_payers must be an integer between {MIN_PAYERS} and {MAX_PAYERS}")


def split_equal(total_amount: int, num_payers: int) -> List[int]:
    """
    Split a total into near-equal integer shares.

    The first `remainder` payers (in input order) receive base + 1, the rest
    receive base, so the shares always sum to the total and differ by at most 1.

    Example:
        100 / 3 → [34, 33, 33]
    """
    _validate_total(total_amount)
    _validate_num_payers(num_payers)

    base = total_amount // num_payers
    remainder = total_amount % num_payers

    return [base + 1 if i < remainder else base for i in range(num_payers)]


def validate_custom_split(total_amount: int, amounts: Sequence[int]) -> List[int]:
    """Check caller-supplied shares sum exactly to the total. No silent adjustment."""
    _validate_total(total_amount)
    _validate_num_payers(len(amounts))

    for amount in amounts:
        if not _is_int(amount) or amount < 0:
            raise SplitValidationError("custom amounts must be non-negative integers")

    allocated = sum(amounts)
    if allocated != total_amount:
        raise SplitValidationError(
            f"Custom amounts ({allocated}) must equal total amount ({total_amount})"
        )
    return list(amounts)


def validate_allocations(share_amount: int, allocations: Sequence[AllocationRequest]) -> None:
    """Multi-card allocations must be positive and cover the share exactly"""
    if not allocations:
        raise SplitValidationError("At least one allocation is required")

    for allocation in allocations:
        if not _is_int(allocation.amount) or allocation.amount <= 0:
            raise SplitValidationError("Allocation amounts must be positive integers")

    total_allocated = sum(a.amount for a in allocations)
    if total_allocated != share_amount:
        raise SplitValidationError(
            f"Total allocation ({total_allocated}) must equal share amount ({share_amount})"
        )


def compute_shares(
    total_amount: int,
    num_payers: int,
    mode: PaymentMode = PaymentMode.SPLIT,
    custom_amounts: Optional[Sequence[int]] = None,
) -> List[int]:
    """
    Main entry point: resolve the per-payer shares for a new collection.

    - self-pay: one payer holds the entire total
    - split with custom_amounts: validated as-is
    - split: equal split with first-N remainder
    """
    if mode == PaymentMode.SELF_PAY:
        _validate_total(total_amount)
        _validate_num_payers(num_payers)
        return [total_amount]

    if custom_amounts is not None:
        if len(custom_amounts) != num_payers:
            raise SplitValidationError(
                f"Expected {num_payers} custom amounts, got {len(custom_amounts)}"
            )
        return validate_custom_split(total_amount, custom_amounts)

    return split_equal(total_amount, num_payers)
