from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, JSON, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from grc_api.db.base import Base, value_enum


class ReceiptStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Receipt(Base):
    __tablename__ = "receipts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    member_id = Column(UUID(as_uuid=True), ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    grc_id = Column(UUID(as_uuid=True), ForeignKey("grcs.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = Column(Text, nullable=True)
    image_hash = Column(String(64), nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=True)
    receipt_date = Column(Date, nullable=True)
    extracted_store_name = Column(String(255), nullable=True)
    store_mismatch = Column(Boolean, nullable=False, default=False, server_default="false")
    date_mismatch = Column(Boolean, nullable=False, default=False, server_default="false")
    member_override = Column(Boolean, nullable=False, default=False, server_default="false")
    veryfi_document_id = Column(String(64), nullable=True)
    veryfi_response = Column(JSON, nullable=True)
    status = Column(value_enum(ReceiptStatusEnum, "receipt_status"), nullable=False, default=ReceiptStatusEnum.PENDING)
    rejection_reason = Column(Text, nullable=True)
    rejection_notes = Column(Text, nullable=True)
    reupload_allowed_until = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    member = relationship("Member")
    grc = relationship("Grc")
