from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, JSON, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from grc_api.db.base import Base


class UserRoleEnum(str, Enum):
    MEMBER = "member"
    MERCHANT = "merchant"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(20), nullable=True)
    role = Column(String(length=16), nullable=False, default=UserRoleEnum.MEMBER.value, server_default=UserRoleEnum.MEMBER.value)
    notification_prefs = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    member = relationship("Member", back_populates="user", uselist=False)
    merchant = relationship("Merchant", back_populates="user", uselist=False)
    email_preference = relationship("EmailPreference", back_populates="user", uselist=False)


class EmailPreference(Base):
    """Per-user opt-outs consulted before marketing and transactional sends."""

    __tablename__ = "email_preferences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    marketing_emails = Column(Boolean, nullable=False, default=True, server_default="true")
    transactional_emails = Column(Boolean, nullable=False, default=True, server_default="true")
    unsubscribed_all = Column(Boolean, nullable=False, default=False, server_default="false")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="email_preference")
