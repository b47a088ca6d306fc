"""Passwordless sign-in: magic link issuance and verification."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from urllib.parse import quote

from email_validator import EmailNotValidError, validate_email
from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.core.settings import Settings, get_settings
from grc_api.domain.grc import ensure_aware, utcnow
from grc_api.models import MagicLinkToken, Member, User, UserRoleEnum
from grc_api.services.errors import GoneError, NotFoundError, RateLimitedError, ValidationFailed
from grc_api.services.notifications import NotificationService

from .rate_limit import RateLimiter
from .tokens import create_session_token, generate_token, hash_token

GENERIC_RESPONSE = "If an account exists for that email, a sign-in link is on its way."


def sanitize_callback_url(callback_url: str | None) -> str | None:
    """Only same-origin relative paths are accepted as post-login targets."""

    if not callback_url:
        return None
    candidate = callback_url.strip()
    if not candidate.startswith("/") or candidate.startswith("//"):
        return None
    if candidate in {"/", "/?"}:
        return None
    return candidate


def normalize_email(email: str) -> str:
    try:
        result = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationFailed("A valid email address is required") from exc
    return result.normalized.lower()


@dataclass(slots=True)
class VerifiedSession:
    user: User
    session_token: str
    redirect_path: str


class MagicLinkService:
    def __init__(
        self,
        db_session: AsyncSession,
        *,
        rate_limiter: RateLimiter | None = None,
        notification_service: NotificationService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._db = db_session
        self._rate_limiter = rate_limiter
        self._notifications = notification_service
        self._settings = settings or get_settings()

    def link_url(self, raw_token: str) -> str:
        return f"{self._settings.frontend_url.rstrip('/')}/auth/verify?token={quote(raw_token)}"

    async def issue_token(self, email: str, *, callback_url: str | None = None) -> str:
        """Persist a hashed token for ``email`` and return the raw value."""

        raw_token = generate_token()
        record = MagicLinkToken(
            email=email.lower(),
            token_hash=hash_token(raw_token),
            callback_url=sanitize_callback_url(callback_url),
            expires_at=utcnow() + timedelta(minutes=self._settings.magic_link_expiry_minutes),
        )
        self._db.add(record)
        await self._db.flush()
        return raw_token

    async def request_link(self, email: str, *, callback_url: str | None = None) -> str:
        normalized = normalize_email(email)

        if self._rate_limiter is not None:
            state = await self._rate_limiter.hit(
                "magic-link",
                normalized,
                limit=self._settings.magic_link_rate_limit,
                window_seconds=self._settings.magic_link_rate_window_seconds,
            )
            if not state.allowed:
                logger.warning("Magic link rate limit exceeded", email=normalized)
                raise RateLimitedError(
                    "Too many sign-in requests. Please try again later.",
                    retry_after_seconds=state.retry_after_seconds or self._settings.magic_link_rate_window_seconds,
                )

        stmt = select(User).where(func.lower(User.email) == normalized)
        user = (await self._db.execute(stmt)).scalar_one_or_none()
        if user is None:
            logger.info("Magic link requested for unknown email")
            return GENERIC_RESPONSE

        raw_token = await self.issue_token(normalized, callback_url=callback_url)
        await self._db.commit()
        logger.info("Magic link issued", user_id=str(user.id))

        if self._notifications is not None:
            await self._notifications.send_magic_link(normalized, self.link_url(raw_token))
        return GENERIC_RESPONSE

    async def _redirect_for(self, user: User, callback_url: str | None) -> str:
        if callback_url:
            return callback_url
        if user.role == UserRoleEnum.ADMIN.value:
            return "/admin"
        if user.role == UserRoleEnum.MERCHANT.value:
            return "/merchant"
        stmt = select(Member.id).where(Member.user_id == user.id)
        if (await self._db.execute(stmt)).scalar_one_or_none() is not None:
            return "/member"
        return "/member/register"

    async def verify(self, raw_token: str) -> VerifiedSession:
        if not raw_token:
            raise ValidationFailed("Token is required")

        stmt = select(MagicLinkToken).where(MagicLinkToken.token_hash == hash_token(raw_token))
        record = (await self._db.execute(stmt)).scalar_one_or_none()
        if record is None:
            raise ValidationFailed("Invalid or unknown sign-in link")
        if ensure_aware(record.expires_at) <= utcnow():
            raise GoneError("This sign-in link has expired")
        if record.used_at is not None:
            raise ValidationFailed("This sign-in link has already been used")

        user_stmt = select(User).where(func.lower(User.email) == record.email.lower())
        user = (await self._db.execute(user_stmt)).scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")

        record.used_at = utcnow()
        await self._db.commit()

        session_token = create_session_token(user.id, user.role, settings=self._settings)
        redirect_path = await self._redirect_for(user, record.callback_url)
        logger.info("Magic link verified", user_id=str(user.id), role=user.role)
        return VerifiedSession(user=user, session_token=session_token, redirect_path=redirect_path)
