"""Merchant, category and onboarding models."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, JSON, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from grc_api.db.base import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Merchant(Base):
    __tablename__ = "merchants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    business_name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=True, unique=True, index=True)
    category_id = Column(UUID(as_uuid=True), ForeignKey("categories.id"), nullable=True)
    street_address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(2), nullable=True)
    zip_code = Column(String(10), nullable=True)
    phone = Column(String(20), nullable=True)
    website = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    about_story = Column(Text, nullable=True)
    logo_url = Column(Text, nullable=True)
    vimeo_url = Column(Text, nullable=True)
    instagram_url = Column(String(255), nullable=True)
    facebook_url = Column(String(255), nullable=True)
    tiktok_url = Column(String(255), nullable=True)
    hours = Column(JSON, nullable=True)
    photos = Column(JSON, nullable=True)
    services = Column(JSON, nullable=True)
    google_place_id = Column(String(255), nullable=True)
    verified = Column(Boolean, nullable=False, default=False, server_default="false")
    # Admin-built directory listing with no owning account.
    is_public_page = Column(Boolean, nullable=False, default=False, server_default="false")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="merchant")
    category = relationship("Category")


class MerchantBankAccount(Base):
    __tablename__ = "merchant_bank_accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, unique=True)
    bank_name = Column(String(255), nullable=True)
    routing_number = Column(String(32), nullable=False)
    account_number = Column(String(64), nullable=False)
    account_type = Column(String(20), nullable=False)
    account_holder_name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def routing_last4(self) -> str:
        return (self.routing_number or "")[-4:]

    @property
    def account_last4(self) -> str:
        return (self.account_number or "")[-4:]


class MerchantInvite(Base):
    """Single-use onboarding invite; only the sha256 of the token is stored."""

    __tablename__ = "merchant_invites"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True)
    business_name = Column(String(255), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    used_by_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
