"""Fulfilment of the monthly $25 gift card for qualified months."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import MONTHLY_REWARD_AMOUNT, utcnow
from grc_api.models import Grc, Member, Merchant, MonthlyQualification, QualificationStatusEnum, User
from grc_api.services.errors import GrcServiceError, NotFoundError, ValidationFailed
from grc_api.services.notifications import NotificationService

GiftCardFilter = Literal["pending", "sent"]


@dataclass(slots=True)
class GiftCardRow:
    qualification: MonthlyQualification
    member: Member
    email: str
    grc: Grc
    merchant_name: str


@dataclass(slots=True)
class GiftCardStats:
    pending: int
    sent: int

    @property
    def pending_amount(self) -> Decimal:
        return MONTHLY_REWARD_AMOUNT * self.pending


@dataclass(slots=True)
class GiftCardPage:
    rows: list[GiftCardRow]
    total: int
    page: int
    limit: int
    stats: GiftCardStats


@dataclass(slots=True)
class BulkGiftCardResult:
    updated: int = 0
    failed: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)


class GiftCardService:
    def __init__(
        self,
        db_session: AsyncSession,
        *,
        notification_service: NotificationService | None = None,
    ) -> None:
        self._db = db_session
        self._notifications = notification_service

    async def stats(self) -> GiftCardStats:
        stmt = select(
            func.sum(case((MonthlyQualification.reward_sent_at.is_(None), 1), else_=0)),
            func.sum(case((MonthlyQualification.reward_sent_at.is_not(None), 1), else_=0)),
        ).where(MonthlyQualification.status == QualificationStatusEnum.QUALIFIED)
        pending, sent = (await self._db.execute(stmt)).one()
        return GiftCardStats(pending=int(pending or 0), sent=int(sent or 0))

    async def list_gift_cards(
        self,
        *,
        status: GiftCardFilter | None = None,
        month: int | None = None,
        year: int | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> GiftCardPage:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)

        conditions = [MonthlyQualification.status == QualificationStatusEnum.QUALIFIED]
        if status == "pending":
            conditions.append(MonthlyQualification.reward_sent_at.is_(None))
        elif status == "sent":
            conditions.append(MonthlyQualification.reward_sent_at.is_not(None))
        if month is not None:
            conditions.append(MonthlyQualification.month == month)
        if year is not None:
            conditions.append(MonthlyQualification.year == year)
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(Member.first_name).like(pattern),
                    func.lower(Member.last_name).like(pattern),
                    func.lower(User.email).like(pattern),
                )
            )

        base = (
            select(MonthlyQualification, Member, User.email, Grc, Merchant.business_name)
            .join(Member, Member.id == MonthlyQualification.member_id)
            .join(User, User.id == Member.user_id)
            .join(Grc, Grc.id == MonthlyQualification.grc_id)
            .join(Merchant, Merchant.id == Grc.merchant_id)
            .where(*conditions)
        )
        stmt = (
            base.order_by(MonthlyQualification.year.desc(), MonthlyQualification.month.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        rows = [
            GiftCardRow(qualification=row[0], member=row[1], email=row[2], grc=row[3], merchant_name=row[4])
            for row in (await self._db.execute(stmt)).all()
        ]
        count_stmt = select(func.count()).select_from(base.subquery())
        total = int((await self._db.execute(count_stmt)).scalar_one() or 0)
        return GiftCardPage(rows=rows, total=total, page=page, limit=limit, stats=await self.stats())

    async def mark_sent(self, qualification_id: UUID, *, tracking_number: str | None = None) -> MonthlyQualification:
        qualification = await self._db.get(MonthlyQualification, qualification_id)
        if qualification is None:
            raise NotFoundError("Qualification not found")
        if qualification.status != QualificationStatusEnum.QUALIFIED:
            raise ValidationFailed("Only qualified months can receive a gift card")
        if qualification.reward_sent_at is not None:
            raise ValidationFailed("Gift card has already been sent for this month")

        qualification.reward_sent_at = utcnow()
        qualification.gift_card_tracking_number = (tracking_number or "").strip() or None
        await self._db.commit()
        await self._db.refresh(qualification)
        logger.info("Gift card marked sent", qualification_id=str(qualification.id))

        if self._notifications is not None:
            member = await self._db.get(Member, qualification.member_id)
            if member is not None:
                await self._notifications.send_gift_card_sent(qualification, member)
        return qualification

    async def bulk_mark_sent(
        self,
        qualification_ids: Sequence[UUID],
        *,
        tracking_numbers: dict[str, str] | None = None,
    ) -> BulkGiftCardResult:
        if not qualification_ids:
            raise ValidationFailed("qualificationIds must not be empty")
        tracking_numbers = tracking_numbers or {}
        result = BulkGiftCardResult()
        for qualification_id in qualification_ids:
            try:
                await self.mark_sent(qualification_id, tracking_number=tracking_numbers.get(str(qualification_id)))
            except GrcServiceError as exc:
                result.failed += 1
                result.errors.append({"id": str(qualification_id), "error": exc.message})
                continue
            result.updated += 1
        logger.info("Bulk gift card fulfilment finished", updated=result.updated, failed=result.failed)
        return result
