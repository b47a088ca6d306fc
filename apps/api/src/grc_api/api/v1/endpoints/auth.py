"""Magic-link sign in and session endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.api.dependencies.services import get_notification_service, get_rate_limiter
from grc_api.api.dependencies.session import clear_session_cookie, get_current_user, set_session_cookie
from grc_api.api.errors import raise_http
from grc_api.db.session import get_session
from grc_api.models import Member, Merchant, User
from grc_api.services.auth import MagicLinkService, RateLimiter
from grc_api.services.errors import GrcServiceError
from grc_api.services.notifications import NotificationService

router = APIRouter(prefix="/auth", tags=["Auth"])


class MagicLinkRequest(BaseModel):
    email: str
    callback_url: str | None = Field(default=None, alias="callbackUrl")

    model_config = {"populate_by_name": True, "extra": "forbid"}


class MagicLinkResponse(BaseModel):
    success: bool
    message: str


class VerifyRequest(BaseModel):
    token: str

    model_config = {"extra": "forbid"}


class SessionUser(BaseModel):
    id: UUID
    email: str
    role: str


class VerifyResponse(BaseModel):
    success: bool
    token: str
    redirect: str
    user: SessionUser


class MemberSummary(BaseModel):
    id: UUID
    firstName: str
    lastName: str
    city: str | None


class MerchantSummary(BaseModel):
    id: UUID
    businessName: str
    slug: str | None
    verified: bool


class MeResponse(BaseModel):
    user: SessionUser
    member: MemberSummary | None = None
    merchant: MerchantSummary | None = None


@router.post("/magic-link", response_model=MagicLinkResponse)
async def request_magic_link(
    payload: MagicLinkRequest,
    db: AsyncSession = Depends(get_session),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    notifications: NotificationService = Depends(get_notification_service),
) -> MagicLinkResponse:
    service = MagicLinkService(db, rate_limiter=rate_limiter, notification_service=notifications)
    try:
        message = await service.request_link(payload.email, callback_url=payload.callback_url)
    except GrcServiceError as exc:
        raise_http(exc)
    return MagicLinkResponse(success=True, message=message)


async def _verify(token: str, response: Response, db: AsyncSession) -> VerifyResponse:
    try:
        verified = await MagicLinkService(db).verify(token)
    except GrcServiceError as exc:
        raise_http(exc)
    set_session_cookie(response, verified.session_token)
    return VerifyResponse(
        success=True,
        token=verified.session_token,
        redirect=verified.redirect_path,
        user=SessionUser(id=verified.user.id, email=verified.user.email, role=verified.user.role),
    )


@router.get("/verify", response_model=VerifyResponse)
async def verify_magic_link(
    response: Response,
    token: str = Query(...),
    db: AsyncSession = Depends(get_session),
) -> VerifyResponse:
    return await _verify(token, response, db)


@router.post("/verify", response_model=VerifyResponse)
async def verify_magic_link_post(
    payload: VerifyRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
) -> VerifyResponse:
    return await _verify(payload.token, response, db)


@router.get("/me", response_model=MeResponse)
async def current_session(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MeResponse:
    member = (await db.execute(select(Member).where(Member.user_id == user.id))).scalar_one_or_none()
    merchant = (await db.execute(select(Merchant).where(Merchant.user_id == user.id))).scalar_one_or_none()
    return MeResponse(
        user=SessionUser(id=user.id, email=user.email, role=user.role),
        member=(
            MemberSummary(id=member.id, firstName=member.first_name, lastName=member.last_name, city=member.city)
            if member
            else None
        ),
        merchant=(
            MerchantSummary(
                id=merchant.id,
                businessName=merchant.business_name,
                slug=merchant.slug,
                verified=merchant.verified,
            )
            if merchant
            else None
        ),
    )


@router.post("/logout")
async def logout(response: Response) -> dict[str, bool]:
    clear_session_cookie(response)
    return {"success": True}
