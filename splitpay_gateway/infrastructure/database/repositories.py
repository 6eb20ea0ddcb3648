"""Data access layer for collections, payers and payments"""

import uuid
from typing import Dict, List, Optional, Sequence, Tuple
from sqlalchemy import func, update
from sqlalchemy.orm import Session
from splitpay_gateway.infrastructure.database.models import (
    Collection,
    Payer,
    Payment,
    PaymentAllocation,
    PaymentMethod,
    User,
)
from splitpay_gateway.domain.models import (
    CollectionStatus,
    PayerSpec,
    PayerStatus,
    PaymentMethodSpec,
    PaymentStatus,
)
from splitpay_gateway.domain.transitions import assert_payer_transition, assert_payment_transition


class UserRepository:
    """Repository for collection creators"""

    def __init__(self, db: Session):
        self.db = db

    def upsert_by_email(self, email: str) -> User:
        """Find creator by email or create one named after the local part"""
        user = self.db.query(User).filter(User.email == email).first()
        if user is None:
            user = User(email=email, name=email.split("@")[0])
            self.db.add(user)
            self.db.flush()
        return user


class CollectionRepository:
    """Repository for collections"""

    def __init__(self, db: Session):
        self.db = db

    def create_collection(
        self,
        title: str,
        total_amount: int,
        currency: str,
        num_payers: int,
        creator_id: Optional[uuid.UUID] = None,
    ) -> Collection:
        db_collection = Collection(
            title=title[:100],
            total_amount=total_amount,
            currency=currency,
            num_payers=num_payers,
            status=CollectionStatus.PENDING.value,
            creator_id=creator_id,
        )
        self.db.add(db_collection)
        self.db.flush()  # Get ID without committing
        return db_collection

    def get_by_id(self, collection_id: uuid.UUID) -> Optional[Collection]:
        return self.db.query(Collection).filter(Collection.id == collection_id).first()

    def lock(self, collection_id: uuid.UUID) -> Optional[Collection]:
        """Row-lock the collection for the rest of the transaction"""
        return (
            self.db.query(Collection)
            .filter(Collection.id == collection_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def list_recent(self, limit: int = 50) -> List[Collection]:
        return (
            self.db.query(Collection)
            .order_by(Collection.created_at.desc())
            .limit(limit)
            .all()
        )

    def count_payers_by_status(self, collection_id: uuid.UUID) -> Dict[str, int]:
        rows = (
            self.db.query(Payer.status, func.count(Payer.id))
            .filter(Payer.collection_id == collection_id)
            .group_by(Payer.status)
            .all()
        )
        return {status: count for status, count in rows}

    def set_status(self, collection: Collection, status: CollectionStatus) -> None:
        collection.status = status.value
        self.db.flush()


class PayerRepository:
    """Repository for payers and their payment link slugs"""

    def __init__(self, db: Session):
        self.db = db

    def create_payers(
        self,
        collection_id: uuid.UUID,
        payers: Sequence[Tuple[PayerSpec, str]],
    ) -> List[Payer]:
        """Create payers in input order, each with its pre-issued slug"""
        db_payers = []
        for position, (spec, slug) in enumerate(payers):
            db_payer = Payer(
                collection_id=collection_id,
                position=position,
                name=spec.name,
                email=spec.email,
                share_amount=spec.share_amount,
                status=PayerStatus.UNPAID.value,
                pay_link_slug=slug,
            )
            self.db.add(db_payer)
            db_payers.append(db_payer)
        self.db.flush()
        return db_payers

    def get_by_id(self, payer_id: uuid.UUID) -> Optional[Payer]:
        return self.db.query(Payer).filter(Payer.id == payer_id).first()

    def lock(self, payer_id: uuid.UUID) -> Optional[Payer]:
        """Row-lock the payer; take the collection lock first"""
        return (
            self.db.query(Payer)
            .filter(Payer.id == payer_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_by_slug(self, slug: str) -> Optional[Payer]:
        return self.db.query(Payer).filter(Payer.pay_link_slug == slug).first()

    def slug_exists(self, slug: str) -> bool:
        return self.db.query(Payer.id).filter(Payer.pay_link_slug == slug).first() is not None

    def transition_status(
        self,
        payer_id: uuid.UUID,
        from_status: PayerStatus,
        to_status: PayerStatus,
        collection_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """
        Compare-and-swap the payer's status.

        Returns True only for the caller whose UPDATE actually moved the row;
        concurrent callers see rowcount 0 and must treat it as already handled.
        """
        assert_payer_transition(from_status.value, to_status.value)
        self.db.flush()
        stmt = update(Payer).where(Payer.id == payer_id, Payer.status == from_status.value)
        if collection_id is not None:
            stmt = stmt.where(Payer.collection_id == collection_id)
        result = self.db.execute(
            stmt.values(status=to_status.value).execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount == 1

    def list_paid_for_creator(self, creator_id: uuid.UUID) -> List[Tuple[Payer, int]]:
        """Paid payers of a creator's collections with their succeeded payment totals"""
        rows = (
            self.db.query(Payer, func.coalesce(func.sum(Payment.amount), 0))
            .join(Collection, Collection.id == Payer.collection_id)
            .outerjoin(
                Payment,
                (Payment.payer_id == Payer.id) & (Payment.status == PaymentStatus.SUCCEEDED.value),
            )
            .filter(Collection.creator_id == creator_id, Payer.status == PayerStatus.PAID.value)
            .group_by(Payer.id)
            .order_by(Payer.collection_id, Payer.position)
            .all()
        )
        return [(payer, int(total)) for payer, total in rows]


class PaymentMethodRepository:
    """Repository for shared payment method lookups"""

    def __init__(self, db: Session):
        self.db = db

    def get_or_create(self, spec: PaymentMethodSpec) -> PaymentMethod:
        """Deduplicated by (name, provider)"""
        method = (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.name == spec.name, PaymentMethod.provider == spec.provider)
            .first()
        )
        if method is None:
            method = PaymentMethod(name=spec.name, type=spec.type, provider=spec.provider)
            self.db.add(method)
            self.db.flush()
        return method


class PaymentRepository:
    """Repository for payments and multi-card allocations"""

    def __init__(self, db: Session):
        self.db = db

    def create_payment(
        self,
        payer: Payer,
        provider: str,
        amount: int,
        status: PaymentStatus,
        provider_ref: Optional[str] = None,
        is_multi_card: bool = False,
    ) -> Payment:
        db_payment = Payment(
            payer_id=payer.id,
            collection_id=payer.collection_id,
            provider=provider,
            provider_ref=provider_ref,
            amount=amount,
            status=status.value,
            is_multi_card=is_multi_card,
        )
        self.db.add(db_payment)
        self.db.flush()
        return db_payment

    def add_allocations(
        self,
        payment: Payment,
        allocations: Sequence[Tuple[PaymentMethod, int]],
    ) -> List[PaymentAllocation]:
        db_allocations = []
        for position, (method, amount) in enumerate(allocations):
            db_allocation = PaymentAllocation(
                payment_id=payment.id,
                payment_method_id=method.id,
                position=position,
                amount=amount,
                status=PaymentStatus.PENDING.value,
            )
            self.db.add(db_allocation)
            db_allocations.append(db_allocation)
        self.db.flush()
        return db_allocations

    def get_by_id(self, payment_id: uuid.UUID, lock: bool = False) -> Optional[Payment]:
        query = self.db.query(Payment).filter(Payment.id == payment_id)
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def latest_for_payer(self, payer_id: uuid.UUID) -> Optional[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.payer_id == payer_id)
            .order_by(Payment.created_at.desc())
            .first()
        )

    def transition_status(
        self,
        payment_id: uuid.UUID,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
    ) -> bool:
        """Compare-and-swap on the payment's status"""
        assert_payment_transition(from_status.value, to_status.value)
        self.db.flush()
        result = self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == from_status.value)
            .values(status=to_status.value)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount == 1

    def get_allocation(self, allocation_id: uuid.UUID) -> Optional[PaymentAllocation]:
        return self.db.query(PaymentAllocation).filter(PaymentAllocation.id == allocation_id).first()

    def settle_allocation(
        self,
        allocation_id: uuid.UUID,
        to_status: PaymentStatus,
        provider_ref: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """Move an allocation out of PENDING; later events for it are ignored"""
        assert_payment_transition(PaymentStatus.PENDING.value, to_status.value)
        self.db.flush()
        result = self.db.execute(
            update(PaymentAllocation)
            .where(
                PaymentAllocation.id == allocation_id,
                PaymentAllocation.status == PaymentStatus.PENDING.value,
            )
            .values(status=to_status.value, provider_ref=provider_ref, failure_reason=failure_reason)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount == 1

    def allocation_statuses(self, payment_id: uuid.UUID) -> List[str]:
        rows = (
            self.db.query(PaymentAllocation.status)
            .filter(PaymentAllocation.payment_id == payment_id)
            .all()
        )
        return [status for (status,) in rows]
