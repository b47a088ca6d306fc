"""Invite-only merchant onboarding with trial inventory."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Literal
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.core.settings import Settings, get_settings
from grc_api.domain.grc import TRIAL_GRC_DENOMINATION, TRIAL_GRC_QUANTITY, ensure_aware, utcnow
from grc_api.models import Category, Merchant, MerchantInvite, User, UserRoleEnum
from grc_api.services.auth.magic_link import MagicLinkService, normalize_email
from grc_api.services.auth.tokens import generate_token, hash_token
from grc_api.services.errors import GoneError, NotFoundError, ValidationFailed
from grc_api.services.grc.inventory import InventoryService
from grc_api.services.notifications import NotificationService

from .profile import unique_slug

InviteStatus = Literal["pending", "used", "expired"]

_EXISTING_ACCOUNT_MESSAGES = {
    UserRoleEnum.MEMBER.value: (
        "member_exists",
        "This email is registered as a member and cannot be converted to a merchant account.",
    ),
    UserRoleEnum.MERCHANT.value: (
        "merchant_exists",
        "This email is already registered as a merchant. Please log in instead. "
        "Trial GRCs are not available for existing merchants.",
    ),
    UserRoleEnum.ADMIN.value: (
        "admin_exists",
        "This email is registered as an admin and cannot be used for a merchant account.",
    ),
}


class MerchantEmailUnavailable(ValidationFailed):
    """The email already belongs to an account; ``code`` names its role."""


@dataclass(slots=True)
class CreatedInvite:
    invite: MerchantInvite
    token: str
    invite_url: str


@dataclass(slots=True)
class InviteStats:
    total: int
    pending: int
    used: int
    expired: int


@dataclass(slots=True)
class OnboardingRequest:
    token: str
    email: str
    business_name: str
    city: str | None = None
    state: str | None = None
    category_id: UUID | None = None
    phone: str | None = None
    website: str | None = None


@dataclass(slots=True)
class OnboardingResult:
    user: User
    merchant: Merchant
    magic_token: str


def invite_status(invite: MerchantInvite) -> InviteStatus:
    if invite.used_at is not None:
        return "used"
    if ensure_aware(invite.expires_at) <= utcnow():
        return "expired"
    return "pending"


class MerchantOnboardingService:
    def __init__(
        self,
        db_session: AsyncSession,
        *,
        notification_service: NotificationService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._db = db_session
        self._notifications = notification_service
        self._settings = settings or get_settings()

    def invite_url(self, token: str) -> str:
        return f"{self._settings.frontend_url.rstrip('/')}/onboard/merchant?token={token}"

    async def validate_email_for_merchant(self, email: str) -> str:
        normalized = normalize_email(email)
        stmt = select(User.role).where(func.lower(User.email) == normalized)
        role = (await self._db.execute(stmt)).scalar_one_or_none()
        if role is None:
            return normalized
        code, message = _EXISTING_ACCOUNT_MESSAGES.get(role, ("member_exists", "This email is already registered."))
        raise MerchantEmailUnavailable(message, code=code)

    async def create_invite(
        self,
        *,
        created_by: UUID | None,
        email: str | None = None,
        business_name: str | None = None,
        expires_in_days: int = 7,
    ) -> CreatedInvite:
        if not 1 <= expires_in_days <= 30:
            raise ValidationFailed("expiresInDays must be between 1 and 30")
        normalized = await self.validate_email_for_merchant(email) if email else None

        token = generate_token()
        invite = MerchantInvite(
            token_hash=hash_token(token),
            email=normalized,
            business_name=(business_name or "").strip() or None,
            expires_at=utcnow() + timedelta(days=expires_in_days),
            created_by=created_by,
        )
        self._db.add(invite)
        await self._db.commit()
        await self._db.refresh(invite)
        logger.info("Merchant invite created", invite_id=str(invite.id), expires_in_days=expires_in_days)
        return CreatedInvite(invite=invite, token=token, invite_url=self.invite_url(token))

    async def list_invites(self, *, status: InviteStatus | None = None) -> tuple[list[MerchantInvite], InviteStats]:
        stmt = select(MerchantInvite).order_by(MerchantInvite.created_at.desc())
        invites = list((await self._db.execute(stmt)).scalars().all())
        statuses = [invite_status(invite) for invite in invites]
        stats = InviteStats(
            total=len(invites),
            pending=statuses.count("pending"),
            used=statuses.count("used"),
            expired=statuses.count("expired"),
        )
        if status is not None:
            invites = [invite for invite, current in zip(invites, statuses) if current == status]
        return invites, stats

    async def revoke_invite(self, invite_id: UUID) -> None:
        invite = await self._db.get(MerchantInvite, invite_id)
        if invite is None:
            raise NotFoundError("Invite not found")
        if invite.used_at is not None:
            raise ValidationFailed("Cannot revoke an invite that has already been used")
        await self._db.delete(invite)
        await self._db.commit()
        logger.info("Merchant invite revoked", invite_id=str(invite_id))

    async def validate_invite(self, token: str) -> MerchantInvite:
        if not token:
            raise ValidationFailed("Token is required")
        stmt = select(MerchantInvite).where(MerchantInvite.token_hash == hash_token(token))
        invite = (await self._db.execute(stmt)).scalar_one_or_none()
        if invite is None:
            raise NotFoundError("Invalid invitation link")
        status = invite_status(invite)
        if status == "used":
            raise GoneError("This invitation has already been used")
        if status == "expired":
            raise GoneError("This invitation has expired")
        return invite

    async def complete(self, request: OnboardingRequest) -> OnboardingResult:
        """Create the merchant account, its trial inventory and a sign-in link."""

        if not request.business_name.strip():
            raise ValidationFailed("Business name is required")
        invite = await self.validate_invite(request.token)
        email = await self.validate_email_for_merchant(request.email)
        if request.category_id is not None and await self._db.get(Category, request.category_id) is None:
            raise ValidationFailed("Unknown category")

        user = User(email=email, role=UserRoleEnum.MERCHANT.value, phone=request.phone)
        self._db.add(user)
        await self._db.flush()

        merchant = Merchant(
            user_id=user.id,
            business_name=request.business_name.strip(),
            slug=await unique_slug(self._db, request.business_name, request.city),
            city=request.city,
            state=request.state,
            category_id=request.category_id,
            phone=request.phone,
            website=request.website,
        )
        self._db.add(merchant)
        await self._db.flush()

        await InventoryService(self._db).grant_trial(
            merchant.id,
            denomination=TRIAL_GRC_DENOMINATION,
            commit=False,
        )
        invite.used_at = utcnow()
        invite.used_by_user_id = user.id

        magic_links = MagicLinkService(self._db, settings=self._settings)
        magic_token = await magic_links.issue_token(email, callback_url="/merchant")
        await self._db.commit()
        await self._db.refresh(user)
        await self._db.refresh(merchant)
        logger.info("Merchant onboarded", merchant_id=str(merchant.id), invite_id=str(invite.id))

        if self._notifications is not None:
            await self._notifications.send_merchant_welcome(
                email,
                business_name=merchant.business_name,
                sign_in_url=magic_links.link_url(magic_token),
                trial_quantity=TRIAL_GRC_QUANTITY,
            )
        return OnboardingResult(user=user, merchant=merchant, magic_token=magic_token)
