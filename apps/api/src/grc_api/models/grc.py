"""Certificate inventory and issued certificate models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from grc_api.db.base import Base, value_enum


class GrcStatusEnum(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"


class PaymentMethodEnum(str, Enum):
    BANK_ACCOUNT = "bank_account"
    ZELLE = "zelle"
    BUSINESS_CHECK = "business_check"


class PaymentStatusEnum(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class Grc(Base):
    """An issued certificate; unclaimed certificates have no member."""

    __tablename__ = "grcs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    member_id = Column(UUID(as_uuid=True), ForeignKey("members.id", ondelete="SET NULL"), nullable=True, index=True)
    denomination = Column(Integer, nullable=False)
    cost_per_cert = Column(Numeric(10, 2), nullable=False)
    grocery_store = Column(String(255), nullable=True)
    grocery_store_place_id = Column(String(255), nullable=True)
    status = Column(value_enum(GrcStatusEnum, "grc_status"), nullable=False, default=GrcStatusEnum.PENDING)
    months_remaining = Column(Integer, nullable=False)
    start_month = Column(Integer, nullable=True)
    start_year = Column(Integer, nullable=True)
    recipient_email = Column(String(255), nullable=True, index=True)
    recipient_name = Column(String(255), nullable=True)
    issued_at = Column(DateTime(timezone=True), nullable=True)
    registered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    merchant = relationship("Merchant")
    member = relationship("Member")


class GrcPurchase(Base):
    """Inventory order placed by a merchant; only confirmed rows count as stock."""

    __tablename__ = "grc_purchases"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    denomination = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    total_cost = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(value_enum(PaymentMethodEnum, "payment_method"), nullable=False)
    payment_status = Column(
        value_enum(PaymentStatusEnum, "payment_status"),
        nullable=False,
        default=PaymentStatusEnum.PENDING,
    )
    is_trial = Column(Boolean, nullable=False, default=False, server_default="false")
    zelle_account_name = Column(String(255), nullable=True)
    payment_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    payment_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    payment_confirmed_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    merchant = relationship("Merchant")
