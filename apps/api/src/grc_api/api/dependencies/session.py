"""Session-aware dependencies resolving the caller from the session JWT."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.core.settings import settings
from grc_api.db.session import get_session
from grc_api.models import Member, Merchant, User, UserRoleEnum
from grc_api.services.auth import InvalidSessionToken, decode_session_token


def _extract_token(request: Request, authorization: str | None) -> str | None:
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return request.cookies.get(settings.session_cookie_name)


async def get_optional_user(
    request: Request,
    authorization: str | None = Header(None),
    db: AsyncSession = Depends(get_session),
) -> User | None:
    token = _extract_token(request, authorization)
    if not token:
        return None
    try:
        claims = decode_session_token(token)
    except InvalidSessionToken as error:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired session") from error

    user = await db.get(User, claims.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session user not found")
    return user


async def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRoleEnum.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


async def require_member_user(user: User = Depends(get_current_user)) -> User:
    """Members who may not have completed their profile yet."""

    if user.role != UserRoleEnum.MEMBER.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Member access required")
    return user


async def require_member(
    user: User = Depends(require_member_user),
    db: AsyncSession = Depends(get_session),
) -> Member:
    stmt = select(Member).where(Member.user_id == user.id)
    member = (await db.execute(stmt)).scalar_one_or_none()
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member profile not found")
    return member


async def require_merchant(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> Merchant:
    if user.role not in (UserRoleEnum.MERCHANT.value, UserRoleEnum.ADMIN.value):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Merchant access required")
    stmt = select(Merchant).where(Merchant.user_id == user.id)
    merchant = (await db.execute(stmt)).scalar_one_or_none()
    if merchant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Merchant profile not found")
    return merchant


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_ttl_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(settings.session_cookie_name, path="/")
