"""Invite-based merchant onboarding."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.api.dependencies.services import get_notification_service
from grc_api.api.errors import raise_http
from grc_api.db.session import get_session
from grc_api.domain.grc import TRIAL_GRC_DENOMINATION, TRIAL_GRC_QUANTITY
from grc_api.services.errors import GrcServiceError
from grc_api.services.merchants import MerchantOnboardingService, OnboardingRequest
from grc_api.services.notifications import NotificationService

router = APIRouter(prefix="/onboard", tags=["Onboarding"])


class InviteDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    email: str | None = None
    business_name: str | None = Field(None, alias="businessName")


class OnboardingCompleteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    token: str = Field(..., min_length=1)
    email: str
    business_name: str = Field(..., alias="businessName", min_length=1)
    city: str | None = None
    state: str | None = Field(None, max_length=2)
    category_id: UUID | None = Field(None, alias="categoryId")
    phone: str | None = None
    website: str | None = None


class OnboardingCompleteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    merchant_id: UUID = Field(..., alias="merchantId")
    slug: str | None = None
    trial_grcs: int = Field(..., alias="trialGrcs")
    trial_denomination: int = Field(..., alias="trialDenomination")
    message: str


@router.get("/validate-invite", response_model=InviteDetails)
async def validate_invite(
    token: str = Query(...),
    db: AsyncSession = Depends(get_session),
) -> InviteDetails:
    try:
        invite = await MerchantOnboardingService(db).validate_invite(token)
    except GrcServiceError as exc:
        raise_http(exc)
    return InviteDetails(valid=True, email=invite.email, business_name=invite.business_name)


@router.post("/complete", response_model=OnboardingCompleteResponse, status_code=status.HTTP_201_CREATED)
async def complete_onboarding(
    payload: OnboardingCompleteRequest,
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> OnboardingCompleteResponse:
    service = MerchantOnboardingService(db, notification_service=notifications)
    try:
        result = await service.complete(OnboardingRequest(**payload.model_dump()))
    except GrcServiceError as exc:
        raise_http(exc, include_code=True)
    return OnboardingCompleteResponse(
        success=True,
        merchant_id=result.merchant.id,
        slug=result.merchant.slug,
        trial_grcs=TRIAL_GRC_QUANTITY,
        trial_denomination=TRIAL_GRC_DENOMINATION,
        message="Check your email for a sign-in link.",
    )
