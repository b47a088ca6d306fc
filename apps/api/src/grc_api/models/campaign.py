"""Broadcast email campaigns and per-recipient delivery tracking."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from grc_api.db.base import Base, value_enum


class CampaignStatusEnum(str, Enum):
    DRAFT = "draft"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


class RecipientTypeEnum(str, Enum):
    INDIVIDUAL = "individual"
    LISTS = "lists"


class RecipientListEnum(str, Enum):
    MEMBERS = "members"
    MERCHANTS = "merchants"
    ADMINS = "admins"


class CampaignRecipientStatusEnum(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    BOUNCED = "bounced"


class EmailCampaign(Base):
    __tablename__ = "email_campaigns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    subject = Column(String(255), nullable=False)
    preview_text = Column(String(255), nullable=True)
    content = Column(Text, nullable=False)
    recipient_type = Column(value_enum(RecipientTypeEnum, "campaign_recipient_type"), nullable=False)
    recipient_lists = Column(JSON, nullable=True)
    individual_recipient_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    recipient_count = Column(Integer, nullable=False, default=0, server_default="0")
    status = Column(value_enum(CampaignStatusEnum, "campaign_status"), nullable=False, default=CampaignStatusEnum.DRAFT)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    total_sent = Column(Integer, nullable=False, default=0, server_default="0")
    total_failed = Column(Integer, nullable=False, default=0, server_default="0")
    unique_opens = Column(Integer, nullable=False, default=0, server_default="0")
    unique_clicks = Column(Integer, nullable=False, default=0, server_default="0")
    total_bounces = Column(Integer, nullable=False, default=0, server_default="0")
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    recipients = relationship("CampaignRecipient", back_populates="campaign", cascade="all, delete-orphan")


class CampaignRecipient(Base):
    __tablename__ = "campaign_recipients"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("email_campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    status = Column(
        value_enum(CampaignRecipientStatusEnum, "campaign_recipient_status"),
        nullable=False,
        default=CampaignRecipientStatusEnum.PENDING,
    )
    postmark_message_id = Column(String(64), nullable=True, index=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    opened_at = Column(DateTime(timezone=True), nullable=True)
    clicked_at = Column(DateTime(timezone=True), nullable=True)
    bounced_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    campaign = relationship("EmailCampaign", back_populates="recipients")
