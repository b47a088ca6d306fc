from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from grc_api.db.base import Base, value_enum


class QualificationStatusEnum(str, Enum):
    IN_PROGRESS = "in_progress"
    RECEIPTS_COMPLETE = "receipts_complete"
    QUALIFIED = "qualified"
    PENDING_REVIEW = "pending_review"
    FORFEITED = "forfeited"


class MonthlyQualification(Base):
    """Running receipt total and survey state for one member, certificate and month."""

    __tablename__ = "monthly_qualifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    member_id = Column(UUID(as_uuid=True), ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    grc_id = Column(UUID(as_uuid=True), ForeignKey("grcs.id", ondelete="CASCADE"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    approved_total = Column(Numeric(10, 2), nullable=False, default=0, server_default="0")
    survey_completed_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        value_enum(QualificationStatusEnum, "qualification_status"),
        nullable=False,
        default=QualificationStatusEnum.IN_PROGRESS,
    )
    reward_sent_at = Column(DateTime(timezone=True), nullable=True)
    gift_card_tracking_number = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    member = relationship("Member")
    grc = relationship("Grc")

    __table_args__ = (
        UniqueConstraint("member_id", "grc_id", "month", "year", name="uq_monthly_qualifications_member_grc_period"),
    )
