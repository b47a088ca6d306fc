"""Certificate issuance and the claim flow."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.core.settings import Settings, get_settings
from grc_api.domain.grc import (
    cost_per_cert,
    is_valid_denomination,
    months_for_denomination,
    utcnow,
)
from grc_api.models import Grc, GrcStatusEnum, Merchant, Survey, User, UserRoleEnum
from grc_api.services.errors import GoneError, NotFoundError, ValidationFailed
from grc_api.services.notifications import NotificationService

from .inventory import InventoryService

MAX_BULK_RECIPIENTS = 500


@dataclass(slots=True)
class IssueRequest:
    email: str
    recipient_name: str
    denomination: int


@dataclass(slots=True)
class BulkIssueResult:
    issued: list[Grc] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)


@dataclass(slots=True)
class ClaimInfo:
    grc: Grc
    merchant: Merchant
    survey: Survey | None


class GrcIssuanceService:
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
        self._inventory = InventoryService(db_session)

    def claim_url(self, grc_id: UUID) -> str:
        return f"{self._settings.api_base_url.rstrip('/')}/api/v1/grc/{grc_id}/claim"

    async def list_for_merchant(self, merchant_id: UUID, *, status: GrcStatusEnum | None = None) -> list[Grc]:
        stmt = select(Grc).where(Grc.merchant_id == merchant_id)
        if status is not None:
            stmt = stmt.where(Grc.status == status)
        stmt = stmt.order_by(Grc.issued_at.desc())
        return list((await self._db.execute(stmt)).scalars().all())

    async def _has_open_grc(self, merchant_id: UUID, email: str) -> bool:
        stmt = select(func.count(Grc.id)).where(
            Grc.merchant_id == merchant_id,
            func.lower(Grc.recipient_email) == email.lower(),
            Grc.status.in_([GrcStatusEnum.PENDING, GrcStatusEnum.ACTIVE]),
        )
        return int((await self._db.execute(stmt)).scalar_one() or 0) > 0

    def _validate_request(self, request: IssueRequest) -> None:
        if not is_valid_denomination(request.denomination):
            raise ValidationFailed(f"Invalid denomination: {request.denomination}")
        if "@" not in request.email:
            raise ValidationFailed("A valid recipient email is required")
        if not request.recipient_name.strip():
            raise ValidationFailed("Recipient name is required")

    def _build(self, merchant: Merchant, request: IssueRequest) -> Grc:
        return Grc(
            merchant_id=merchant.id,
            denomination=request.denomination,
            cost_per_cert=cost_per_cert(request.denomination),
            status=GrcStatusEnum.PENDING,
            months_remaining=months_for_denomination(request.denomination),
            recipient_email=request.email.strip().lower(),
            recipient_name=request.recipient_name.strip(),
            issued_at=utcnow(),
        )

    async def issue(self, merchant: Merchant, request: IssueRequest) -> Grc:
        self._validate_request(request)
        if await self._has_open_grc(merchant.id, request.email):
            raise ValidationFailed("This recipient already has a pending or active GRC from your business")

        inventory = await self._inventory.get_inventory(merchant.id)
        if inventory.available_for(request.denomination) <= 0:
            raise ValidationFailed(f"No ${request.denomination} GRCs available in your inventory")

        grc = self._build(merchant, request)
        self._db.add(grc)
        await self._db.commit()
        await self._db.refresh(grc)
        logger.info(
            "GRC issued",
            grc_id=str(grc.id),
            merchant_id=str(merchant.id),
            denomination=grc.denomination,
        )

        if self._notifications is not None:
            await self._notifications.send_grc_issued(grc, merchant, self.claim_url(grc.id))
        return grc

    async def bulk_issue(self, merchant: Merchant, requests: Sequence[IssueRequest]) -> BulkIssueResult:
        """Issue to many recipients, checking stock against a running count."""

        if not 1 <= len(requests) <= MAX_BULK_RECIPIENTS:
            raise ValidationFailed(f"Between 1 and {MAX_BULK_RECIPIENTS} recipients are required")

        inventory = await self._inventory.get_inventory(merchant.id)
        remaining = {row.denomination: row.available for row in inventory.rows}
        seen: set[str] = set()
        result = BulkIssueResult()

        for request in requests:
            email = request.email.strip().lower()
            try:
                self._validate_request(request)
                if email in seen or await self._has_open_grc(merchant.id, email):
                    raise ValidationFailed("Recipient already has a pending or active GRC")
                if remaining.get(request.denomination, 0) <= 0:
                    raise ValidationFailed(f"No ${request.denomination} GRCs available")
            except ValidationFailed as exc:
                result.failures.append((request.email, exc.message))
                continue

            grc = self._build(merchant, request)
            self._db.add(grc)
            remaining[request.denomination] -= 1
            seen.add(email)
            result.issued.append(grc)

        await self._db.commit()
        for grc in result.issued:
            await self._db.refresh(grc)
        logger.info(
            "Bulk GRC issue finished",
            merchant_id=str(merchant.id),
            issued=len(result.issued),
            failed=len(result.failures),
        )

        if self._notifications is not None:
            for grc in result.issued:
                await self._notifications.send_grc_issued(grc, merchant, self.claim_url(grc.id))
        return result

    async def _load(self, grc_id: UUID) -> Grc:
        grc = await self._db.get(Grc, grc_id)
        if grc is None:
            raise NotFoundError("GRC not found")
        return grc

    async def get_claim_info(self, grc_id: UUID) -> ClaimInfo:
        grc = await self._load(grc_id)
        if grc.member_id is not None:
            raise ValidationFailed("This GRC has already been claimed")
        if grc.status == GrcStatusEnum.EXPIRED:
            raise GoneError("This GRC has expired")
        if grc.status != GrcStatusEnum.PENDING:
            raise ValidationFailed("This GRC is not available for registration")

        merchant = await self._db.get(Merchant, grc.merchant_id)
        if merchant is None:
            raise NotFoundError("Merchant not found")
        survey_stmt = (
            select(Survey)
            .where(Survey.merchant_id == merchant.id, Survey.is_active.is_(True))
            .order_by(Survey.created_at.desc())
            .limit(1)
        )
        survey = (await self._db.execute(survey_stmt)).scalar_one_or_none()
        return ClaimInfo(grc=grc, merchant=merchant, survey=survey)

    async def claim(self, grc_id: UUID) -> tuple[Grc, User]:
        """Resolve (or create) the recipient's account for a pending certificate."""

        grc = await self._load(grc_id)
        if grc.member_id is not None:
            raise ValidationFailed("This GRC has already been claimed")
        if grc.status != GrcStatusEnum.PENDING:
            raise ValidationFailed("This GRC is no longer available")
        if not grc.recipient_email:
            raise ValidationFailed("This GRC has no recipient")

        email = grc.recipient_email.lower()
        stmt = select(User).where(func.lower(User.email) == email)
        user = (await self._db.execute(stmt)).scalar_one_or_none()
        if user is None:
            user = User(email=email, role=UserRoleEnum.MEMBER.value)
            self._db.add(user)
            await self._db.commit()
            await self._db.refresh(user)
            logger.info("Created member account from GRC claim", grc_id=str(grc.id), user_id=str(user.id))
        logger.info("GRC claimed", grc_id=str(grc.id), user_id=str(user.id))
        return grc, user
