"""Providers for collaborators that tests replace through dependency overrides."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.db.session import get_session
from grc_api.services.auth import RateLimiter
from grc_api.services.notifications import NotificationService, PostmarkBroadcastClient
from grc_api.services.receipts import ReceiptImageStorage, VeryfiClient


def get_rate_limiter() -> RateLimiter:
    return RateLimiter()


def get_notification_service(db: AsyncSession = Depends(get_session)) -> NotificationService:
    return NotificationService(db)


def get_veryfi_client() -> VeryfiClient:
    return VeryfiClient()


def get_receipt_storage() -> ReceiptImageStorage:
    return ReceiptImageStorage()


def get_postmark_client() -> PostmarkBroadcastClient:
    return PostmarkBroadcastClient()
