"""Public certificate lookup and the emailed claim link."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.api.dependencies.session import set_session_cookie
from grc_api.api.errors import raise_http
from grc_api.core.settings import settings
from grc_api.db.session import get_session
from grc_api.services.auth import create_session_token
from grc_api.services.errors import GrcServiceError
from grc_api.services.grc import GrcIssuanceService

router = APIRouter(prefix="/grc", tags=["GRC"])


class ClaimMerchant(BaseModel):
    id: UUID
    businessName: str
    slug: str | None
    logoUrl: str | None
    city: str | None
    state: str | None


class ClaimSurvey(BaseModel):
    id: UUID
    title: str
    questions: list[dict[str, Any]]


class GrcInfoResponse(BaseModel):
    id: UUID
    denomination: int
    monthsRemaining: int
    recipientName: str | None
    recipientEmail: str | None
    merchant: ClaimMerchant
    survey: ClaimSurvey | None = None


def _parse_grc_id(grc_id: str) -> UUID:
    try:
        return UUID(grc_id)
    except ValueError as error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid GRC id") from error


@router.get("/{grc_id}", response_model=GrcInfoResponse)
async def get_grc_info(grc_id: str, db: AsyncSession = Depends(get_session)) -> GrcInfoResponse:
    try:
        info = await GrcIssuanceService(db).get_claim_info(_parse_grc_id(grc_id))
    except GrcServiceError as exc:
        raise_http(exc)

    grc, merchant, survey = info.grc, info.merchant, info.survey
    return GrcInfoResponse(
        id=grc.id,
        denomination=grc.denomination,
        monthsRemaining=grc.months_remaining,
        recipientName=grc.recipient_name,
        recipientEmail=grc.recipient_email,
        merchant=ClaimMerchant(
            id=merchant.id,
            businessName=merchant.business_name,
            slug=merchant.slug,
            logoUrl=merchant.logo_url,
            city=merchant.city,
            state=merchant.state,
        ),
        survey=ClaimSurvey(id=survey.id, title=survey.title, questions=survey.questions or []) if survey else None,
    )


@router.get("/{grc_id}/claim")
async def claim_grc(grc_id: str, db: AsyncSession = Depends(get_session)) -> RedirectResponse:
    parsed = _parse_grc_id(grc_id)
    try:
        grc, user = await GrcIssuanceService(db).claim(parsed)
    except GrcServiceError as exc:
        raise_http(exc)

    target = f"{settings.frontend_url.rstrip('/')}/member/register?grc={grc.id}"
    response = RedirectResponse(url=target, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    set_session_cookie(response, create_session_token(user.id, user.role))
    return response
