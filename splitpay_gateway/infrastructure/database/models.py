"""SQLAlchemy ORM models for collections, payers and payments"""

import uuid
from sqlalchemy import (
    Column,
    BigInteger,
    Boolean,
    DateTime,
    Integer,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class User(Base):
    """Collection creator, upserted by email"""

    __tablename__ = "app_user"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    collections = relationship("Collection", back_populates="creator")


class Collection(Base):
    """A bill to be split among payers"""

    __tablename__ = "collection"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(100), nullable=False)
    total_amount = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    num_payers = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, default="PENDING")
    creator_id = Column(UUID(as_uuid=True), ForeignKey("app_user.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    creator = relationship("User", back_populates="collections")
    payers = relationship(
        "Payer",
        back_populates="collection",
        cascade="all, delete-orphan",
        order_by="Payer.position",
    )
    payments = relationship("Payment", back_populates="collection", cascade="all, delete-orphan")


class Payer(Base):
    """One person's obligation within a collection"""

    __tablename__ = "payer"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    collection_id = Column(
        UUID(as_uuid=True), ForeignKey("collection.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    share_amount = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, default="UNPAID")
    pay_link_slug = Column(Text, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    collection = relationship("Collection", back_populates="payers")
    payments = relationship(
        "Payment",
        back_populates="payer",
        cascade="all, delete-orphan",
        order_by="Payment.created_at.desc()",
    )


class Payment(Base):
    """Settlement attempt against a payer's full share"""

    __tablename__ = "payment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payer_id = Column(UUID(as_uuid=True), ForeignKey("payer.id", ondelete="CASCADE"), nullable=False, index=True)
    collection_id = Column(
        UUID(as_uuid=True), ForeignKey("collection.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider = Column(Text, nullable=False)
    provider_ref = Column(Text, nullable=True)
    amount = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, default="PENDING")
    is_multi_card = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    payer = relationship("Payer", back_populates="payments")
    collection = relationship("Collection", back_populates="payments")
    allocations = relationship(
        "PaymentAllocation",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentAllocation.position",
    )


class PaymentMethod(Base):
    """Reusable (name, type, provider) tuple shared by allocations"""

    __tablename__ = "payment_method"
    __table_args__ = (UniqueConstraint("name", "provider", name="uq_payment_method_name_provider"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=False)
    provider = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PaymentAllocation(Base):
    """Portion of a multi-card payment routed through one payment method"""

    __tablename__ = "payment_allocation"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id = Column(
        UUID(as_uuid=True), ForeignKey("payment.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_method_id = Column(UUID(as_uuid=True), ForeignKey("payment_method.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    amount = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, default="PENDING")
    provider_ref = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    payment = relationship("Payment", back_populates="allocations")
    payment_method = relationship("PaymentMethod")
