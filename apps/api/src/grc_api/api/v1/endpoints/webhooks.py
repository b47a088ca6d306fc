"""Inbound provider webhooks."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.db.session import get_session
from grc_api.services.notifications import CampaignService

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/postmark")
async def postmark_webhook(request: Request, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    """Record open, click and bounce events. Always answers 200 so Postmark does not retry."""

    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Postmark webhook with unreadable body")
        return {"received": True, "matched": False}
    if not isinstance(payload, dict):
        return {"received": True, "matched": False}

    try:
        matched = await CampaignService(db).handle_webhook(payload)
    except SQLAlchemyError:
        logger.exception("Failed to record Postmark event", record_type=payload.get("RecordType"))
        return {"received": True, "matched": False}
    return {"received": True, "matched": matched}
