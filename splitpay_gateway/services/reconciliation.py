"""
Collection/payer state machine.

Every payer status change goes through a compare-and-swap UPDATE (only out of
UNPAID) followed by a recomputation of the collection status while the
collection row is locked, all inside one transaction. A lost compare-and-swap
means another request already handled the payer and is treated as a no-op.
"""

import logging
import time
import uuid
from typing import Callable, List, Optional, Sequence, Set

from sqlalchemy.orm import Session

from splitpay_gateway.config import settings
from splitpay_gateway.domain.allocator import compute_shares, validate_allocations
from splitpay_gateway.domain.exceptions import (
    AlreadyProcessedError,
    NotFoundError,
    ProviderError,
    SlugGenerationError,
    ValidationError,
)
from splitpay_gateway.domain.models import (
    MULTI_CARD_PROVIDER,
    AllocationRequest,
    AllocationResult,
    CollectionStatus,
    PayerSpec,
    PayerStatus,
    PaymentMode,
    PaymentStatus,
    SettlementOutcome,
    SettlementRequest,
    SettlementSummary,
)
from splitpay_gateway.domain.slugs import generate_slug_candidate
from splitpay_gateway.domain.transitions import (
    assert_collection_transition,
    derive_collection_status,
    resolve_payment_status,
)
from splitpay_gateway.infrastructure.database.models import Collection, Payer, Payment
from splitpay_gateway.infrastructure.database.repositories import (
    CollectionRepository,
    PayerRepository,
    PaymentMethodRepository,
    PaymentRepository,
    UserRepository,
)
from splitpay_gateway.infrastructure.observability.logging import log_settlement, log_transition
from splitpay_gateway.infrastructure.observability.metrics import (
    record_allocation_settlement,
    record_collection_created,
    record_payer_transition,
)
from splitpay_gateway.infrastructure.providers.registry import ProviderRegistry
from splitpay_gateway.utils.date_utils import epoch_millis

logger = logging.getLogger(__name__)


def issue_unique_slug(
    db: Session,
    prefix: Optional[str] = None,
    reserved: Optional[Set[str]] = None,
    generator: Callable[[str], str] = generate_slug_candidate,
    max_attempts: Optional[int] = None,
) -> str:
    """
    Issue a payment link slug unique across all payers.

    Tries `max_attempts` candidates from `generator`, checking the store and
    the slugs already reserved by the current batch, then falls back to a
    timestamp-derived candidate.

    Raises:
        SlugGenerationError: The fallback candidate collided as well
    """
    prefix = prefix or settings.slug_prefix
    reserved = reserved if reserved is not None else set()
    attempts = max_attempts or settings.slug_max_attempts
    payer_repo = PayerRepository(db)

    def available(candidate: str) -> bool:
        return candidate not in reserved and not payer_repo.slug_exists(candidate)

    for _ in range(attempts):
        candidate = generator(prefix)
        if available(candidate):
            reserved.add(candidate)
            return candidate

    fallback = generate_slug_candidate(f"{prefix}-{epoch_millis()}")
    if not available(fallback):
        raise SlugGenerationError(f"Could not issue a unique slug after {attempts} attempts")

    logger.warning(f"Slug collisions exhausted {attempts} attempts, using fallback {fallback}")
    reserved.add(fallback)
    return fallback


def recompute_collection_status(
    db: Session,
    collection_id: uuid.UUID,
    trigger: str,
    request_id: Optional[str] = None,
) -> CollectionStatus:
    """Apply the status rule from current payer counts; caller commits"""
    collection_repo = CollectionRepository(db)
    collection = collection_repo.lock(collection_id)
    if collection is None:
        raise NotFoundError("Collection not found")

    counts = collection_repo.count_payers_by_status(collection_id)
    new_status = derive_collection_status(
        collection.status,
        unpaid_count=counts.get(PayerStatus.UNPAID.value, 0),
        paid_count=counts.get(PayerStatus.PAID.value, 0),
    )

    if new_status.value != collection.status:
        assert_collection_transition(collection.status, new_status.value)
        old_status = collection.status
        collection_repo.set_status(collection, new_status)
        log_transition("collection", str(collection_id), old_status, new_status.value, trigger, request_id)

    return new_status


def create_collection(
    db: Session,
    title: str,
    total_amount: int,
    num_payers: int,
    mode: str = PaymentMode.SPLIT.value,
    payer_names: Sequence[str] = (),
    payer_emails: Sequence[Optional[str]] = (),
    custom_amounts: Optional[Sequence[int]] = None,
    creator_email: Optional[str] = None,
    currency: Optional[str] = None,
    allocations: Optional[Sequence[AllocationRequest]] = None,
    slug_generator: Callable[[str], str] = generate_slug_candidate,
    request_id: Optional[str] = None,
) -> Collection:
    """
    Create a collection with its payers, all-or-nothing.

    Flow:
    1. Validate inputs and compute shares (no writes yet)
    2. Upsert creator, persist collection (PENDING) and payers (UNPAID)
    3. Self-pay with allocations: persist PENDING multi-card payment
    4. Commit once; any failure rolls everything back
    """
    if not title or not str(title).strip():
        raise ValidationError("Missing required fields: title")

    try:
        payment_mode = PaymentMode(mode)
    except ValueError:
        raise ValidationError(f"Unknown payment mode: {mode}") from None

    if allocations and payment_mode != PaymentMode.SELF_PAY:
        raise ValidationError("Allocations are only supported in self-pay mode")

    shares = compute_shares(total_amount, num_payers, payment_mode, custom_amounts)
    if allocations:
        validate_allocations(shares[0], allocations)

    try:
        creator = UserRepository(db).upsert_by_email(creator_email) if creator_email else None

        if payment_mode == PaymentMode.SELF_PAY:
            specs = [
                PayerSpec(
                    name=(creator.name if creator else None) or "Self Payment",
                    email=creator_email,
                    share_amount=shares[0],
                )
            ]
        else:
            specs = [
                PayerSpec(
                    name=(payer_names[i] if i < len(payer_names) and payer_names[i] else f"Payer {i + 1}"),
                    email=(payer_emails[i] if i < len(payer_emails) and payer_emails[i] else None),
                    share_amount=share,
                )
                for i, share in enumerate(shares)
            ]

        reserved: Set[str] = set()
        slugs = [issue_unique_slug(db, reserved=reserved, generator=slug_generator) for _ in specs]

        collection = CollectionRepository(db).create_collection(
            title=str(title).strip(),
            total_amount=total_amount,
            currency=currency or settings.default_currency,
            num_payers=len(specs),
            creator_id=creator.id if creator else None,
        )
        payers = PayerRepository(db).create_payers(collection.id, list(zip(specs, slugs)))

        if allocations:
            _persist_multi_card_payment(db, payers[0], allocations)

        db.commit()
    except Exception:
        db.rollback()
        raise

    record_collection_created(payment_mode.value, total_amount)
    logger.info(
        "Collection created",
        extra={
            "request_id": request_id,
            "collection_id": str(collection.id),
            "mode": payment_mode.value,
            "num_payers": len(specs),
            "total_amount": total_amount,
        },
    )
    return collection


def _persist_multi_card_payment(
    db: Session,
    payer: Payer,
    allocations: Sequence[AllocationRequest],
) -> Payment:
    payment_repo = PaymentRepository(db)
    method_repo = PaymentMethodRepository(db)

    payment = payment_repo.create_payment(
        payer,
        provider=MULTI_CARD_PROVIDER,
        amount=payer.share_amount,
        status=PaymentStatus.PENDING,
        is_multi_card=True,
    )
    payment_repo.add_allocations(
        payment,
        [(method_repo.get_or_create(a.method), a.amount) for a in allocations],
    )
    return payment


def complete_checkout(
    db: Session,
    payer_id: uuid.UUID,
    collection_id: uuid.UUID,
    provider_ref: Optional[str],
    amount: Optional[int] = None,
    provider: str = "stripe",
    request_id: Optional[str] = None,
) -> bool:
    """
    Record a completed single-method checkout.

    Returns True when this call moved the payer to PAID, False when the payer
    had already left UNPAID (replayed or late event): no Payment row is
    created in that case.

    Raises:
        NotFoundError: Unknown collection, or payer not in that collection
    """
    collection_repo = CollectionRepository(db)
    payer_repo = PayerRepository(db)

    try:
        if collection_repo.lock(collection_id) is None:
            raise NotFoundError("Collection not found")

        payer = payer_repo.get_by_id(payer_id)
        if payer is None or payer.collection_id != collection_id:
            raise NotFoundError("Payer not found")

        if not payer_repo.transition_status(payer_id, PayerStatus.UNPAID, PayerStatus.PAID, collection_id):
            db.rollback()
            logger.info(
                "Checkout completion ignored, payer already processed",
                extra={"request_id": request_id, "payer_id": str(payer_id), "provider_ref": provider_ref},
            )
            return False

        payer = payer_repo.get_by_id(payer_id)
        PaymentRepository(db).create_payment(
            payer,
            provider=provider,
            amount=amount if amount is not None else payer.share_amount,
            status=PaymentStatus.SUCCEEDED,
            provider_ref=provider_ref,
        )
        recompute_collection_status(db, collection_id, "checkout", request_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    record_payer_transition(PayerStatus.PAID.value, "checkout")
    log_transition("payer", str(payer_id), PayerStatus.UNPAID.value, PayerStatus.PAID.value, "checkout", request_id)
    return True


def cancel_payer(
    db: Session,
    payer_id: uuid.UUID,
    collection_id: uuid.UUID,
    request_id: Optional[str] = None,
) -> Payer:
    """
    Cancel an UNPAID payer.

    Raises:
        AlreadyProcessedError: Payer unknown, in another collection, PAID or CANCELLED
    """
    try:
        if CollectionRepository(db).lock(collection_id) is None:
            raise AlreadyProcessedError("Payer not found or already processed")

        payer_repo = PayerRepository(db)
        if not payer_repo.transition_status(payer_id, PayerStatus.UNPAID, PayerStatus.CANCELLED, collection_id):
            raise AlreadyProcessedError("Payer not found or already processed")

        recompute_collection_status(db, collection_id, "cancel", request_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    record_payer_transition(PayerStatus.CANCELLED.value, "cancel")
    log_transition("payer", str(payer_id), PayerStatus.UNPAID.value, PayerStatus.CANCELLED.value, "cancel", request_id)
    return payer_repo.get_by_id(payer_id)


def create_multi_card_payment(
    db: Session,
    payer_slug: str,
    allocations: Sequence[AllocationRequest],
    request_id: Optional[str] = None,
) -> Payment:
    """
    Split one payer's share across several payment methods.

    Raises:
        NotFoundError: Unknown slug
        AlreadyProcessedError: Payer is not UNPAID
        SplitValidationError: Allocations do not cover the share exactly
    """
    payer = PayerRepository(db).get_by_slug(payer_slug)
    if payer is None:
        raise NotFoundError("Payer not found")
    if payer.status == PayerStatus.PAID.value:
        raise AlreadyProcessedError("Payment already completed")
    if payer.status != PayerStatus.UNPAID.value:
        raise AlreadyProcessedError("Payer not found or already processed")

    validate_allocations(payer.share_amount, allocations)

    try:
        payment = _persist_multi_card_payment(db, payer, allocations)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Multi-card payment created",
        extra={"request_id": request_id, "payment_id": str(payment.id), "allocations": len(allocations)},
    )
    return payment


async def settle_multi_card_payment(
    db: Session,
    payment_id: uuid.UUID,
    providers: ProviderRegistry,
    request_id: Optional[str] = None,
) -> SettlementSummary:
    """
    Settle every pending allocation of a multi-card payment.

    Allocations are settled independently; a provider failure is recorded on
    its allocation and never stops the others. The payer is marked PAID only
    if every allocation succeeded (all-or-nothing).

    Raises:
        NotFoundError: Unknown payment
        AlreadyProcessedError: Payment already FAILED (resubmit a new payment),
            or the payer is no longer UNPAID (payment is failed, nothing charged)
        ValidationError: Payment is not a multi-card payment
    """
    start_time = time.time()
    payment_repo = PaymentRepository(db)

    try:
        payment = payment_repo.get_by_id(payment_id, lock=True)
        if payment is None:
            raise NotFoundError("Payment not found")
        if not payment.is_multi_card:
            raise ValidationError("Payment is not a multi-card payment")

        snapshot = [
            (a.id, a.amount, a.status, a.provider_ref, a.failure_reason, a.payment_method.name, a.payment_method.provider)
            for a in payment.allocations
        ]

        if payment.status == PaymentStatus.SUCCEEDED.value:
            db.rollback()
            return SettlementSummary(
                payment_id=str(payment_id),
                all_completed=True,
                results=[
                    AllocationResult(str(a_id), name, provider, True, provider_ref=ref)
                    for a_id, _, _, ref, _, name, provider in snapshot
                ],
            )
        if payment.status == PaymentStatus.FAILED.value:
            raise AlreadyProcessedError("Payment already failed; submit a new multi-card payment")

        payer_id = payment.payer_id
        collection_id = payment.collection_id

        # Lock order on every path: payment, collection, payer
        collection = CollectionRepository(db).lock(collection_id)
        currency = collection.currency
        payer = PayerRepository(db).lock(payer_id)
        if payer.status != PayerStatus.UNPAID.value:
            # Nothing is charged for a payer that already paid or was cancelled
            if payment_repo.transition_status(payment_id, PaymentStatus.PENDING, PaymentStatus.FAILED):
                log_transition(
                    "payment", str(payment_id), PaymentStatus.PENDING.value, PaymentStatus.FAILED.value,
                    "payer_resolved", request_id,
                )
            db.commit()
            if payer.status == PayerStatus.PAID.value:
                raise AlreadyProcessedError("Payment already completed")
            raise AlreadyProcessedError("Payer not found or already processed")

        results: List[AllocationResult] = []
        for a_id, amount, status, ref, reason, method_name, provider in snapshot:
            if status != PaymentStatus.PENDING.value:
                results.append(
                    AllocationResult(
                        str(a_id), method_name, provider,
                        success=status == PaymentStatus.SUCCEEDED.value,
                        provider_ref=ref,
                        error=reason,
                    )
                )
                continue

            try:
                adapter = providers.get(provider)
                outcome = await adapter.settle(
                    SettlementRequest(
                        allocation_id=str(a_id),
                        payment_id=str(payment_id),
                        payer_id=str(payer_id),
                        amount=amount,
                        currency=currency,
                    )
                )
            except ProviderError as e:
                logger.warning(f"Error processing allocation {a_id}: {e}", extra={"request_id": request_id})
                outcome = SettlementOutcome(success=False, error=str(e))

            payment_repo.settle_allocation(
                a_id,
                PaymentStatus.SUCCEEDED if outcome.success else PaymentStatus.FAILED,
                provider_ref=outcome.provider_ref,
                failure_reason=outcome.error,
            )
            record_allocation_settlement(provider, outcome.success)
            results.append(
                AllocationResult(
                    str(a_id), method_name, provider,
                    success=outcome.success,
                    provider_ref=outcome.provider_ref,
                    error=outcome.error,
                )
            )

        all_completed = all(r.success for r in results)
        if all_completed:
            _resolve_payment(db, payment_id, payer_id, collection_id, PaymentStatus.SUCCEEDED, "multi_card", request_id)
        else:
            _resolve_payment(db, payment_id, payer_id, collection_id, PaymentStatus.FAILED, "multi_card", request_id)

        db.commit()
    except Exception:
        db.rollback()
        raise

    summary = SettlementSummary(payment_id=str(payment_id), all_completed=all_completed, results=results)
    duration_ms = (time.time() - start_time) * 1000
    log_settlement(str(payment_id), all_completed, len(summary.failed), duration_ms, request_id)
    return summary


def _resolve_payment(
    db: Session,
    payment_id: uuid.UUID,
    payer_id: uuid.UUID,
    collection_id: uuid.UUID,
    final_status: PaymentStatus,
    trigger: str,
    request_id: Optional[str],
) -> None:
    """
    Close out a multi-card payment; on success mark the payer PAID and recompute.

    Caller holds the payment and collection locks.
    """
    if not PaymentRepository(db).transition_status(payment_id, PaymentStatus.PENDING, final_status):
        return
    log_transition("payment", str(payment_id), PaymentStatus.PENDING.value, final_status.value, trigger, request_id)

    if final_status != PaymentStatus.SUCCEEDED:
        return

    if PayerRepository(db).transition_status(payer_id, PayerStatus.UNPAID, PayerStatus.PAID):
        record_payer_transition(PayerStatus.PAID.value, trigger)
        log_transition("payer", str(payer_id), PayerStatus.UNPAID.value, PayerStatus.PAID.value, trigger, request_id)
        recompute_collection_status(db, collection_id, trigger, request_id)
    else:
        logger.warning(
            "Multi-card payment succeeded for a payer that is no longer unpaid",
            extra={"request_id": request_id, "payment_id": str(payment_id), "payer_id": str(payer_id)},
        )


def apply_allocation_event(
    db: Session,
    payment_id: uuid.UUID,
    allocation_id: uuid.UUID,
    succeeded: bool,
    provider_ref: Optional[str] = None,
    failure_reason: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Optional[PaymentStatus]:
    """
    Record a provider-reported allocation outcome.

    Returns the payment status after the event, or None when the allocation
    had already been settled (duplicate or out-of-order delivery).

    Raises:
        NotFoundError: Unknown payment, or allocation not part of it
    """
    payment_repo = PaymentRepository(db)

    try:
        payment = payment_repo.get_by_id(payment_id, lock=True)
        if payment is None:
            raise NotFoundError("Payment not found")
        CollectionRepository(db).lock(payment.collection_id)
        allocation = payment_repo.get_allocation(allocation_id)
        if allocation is None or allocation.payment_id != payment_id:
            raise NotFoundError("Allocation not found")

        payer_id = payment.payer_id
        collection_id = payment.collection_id

        moved = payment_repo.settle_allocation(
            allocation_id,
            PaymentStatus.SUCCEEDED if succeeded else PaymentStatus.FAILED,
            provider_ref=provider_ref,
            failure_reason=None if succeeded else (failure_reason or "Payment failed"),
        )
        if not moved:
            db.rollback()
            return None

        new_status = resolve_payment_status(payment_repo.allocation_statuses(payment_id))
        if new_status != PaymentStatus.PENDING:
            _resolve_payment(db, payment_id, payer_id, collection_id, new_status, "webhook", request_id)

        db.commit()
    except Exception:
        db.rollback()
        raise

    return new_status


def get_payer_by_slug(db: Session, slug: str) -> Payer:
    payer = PayerRepository(db).get_by_slug(slug)
    if payer is None:
        raise NotFoundError("Payer not found")
    return payer


def get_collection(db: Session, collection_id: uuid.UUID) -> Collection:
    collection = CollectionRepository(db).get_by_id(collection_id)
    if collection is None:
        raise NotFoundError("Collection not found")
    return collection


def list_collections(db: Session, limit: int = 50) -> List[Collection]:
    return CollectionRepository(db).list_recent(limit=limit)
