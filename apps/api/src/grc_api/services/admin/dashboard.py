from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import ensure_aware
from grc_api.models import (
    Grc,
    GrcStatusEnum,
    Member,
    Merchant,
    MonthlyQualification,
    QualificationStatusEnum,
    Receipt,
    ReceiptStatusEnum,
)

RECENT_ACTIVITY_LIMIT = 10


@dataclass(slots=True)
class ActivityItem:
    kind: str
    id: str
    member_name: str
    occurred_at: datetime
    detail: str


@dataclass(slots=True)
class AdminDashboard:
    pending_receipts: int
    gift_cards_pending: int
    active_members: int
    active_merchants: int
    recent_activity: list[ActivityItem] = field(default_factory=list)


class AdminDashboardService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def _scalar(self, stmt) -> int:
        return int((await self._db.execute(stmt)).scalar_one() or 0)

    async def build(self) -> AdminDashboard:
        pending_receipts = await self._scalar(
            select(func.count(Receipt.id)).where(Receipt.status == ReceiptStatusEnum.PENDING)
        )
        gift_cards_pending = await self._scalar(
            select(func.count(MonthlyQualification.id)).where(
                MonthlyQualification.status == QualificationStatusEnum.QUALIFIED,
                MonthlyQualification.reward_sent_at.is_(None),
            )
        )
        active_members = await self._scalar(
            select(func.count(func.distinct(Grc.member_id))).where(
                Grc.status == GrcStatusEnum.ACTIVE,
                Grc.member_id.is_not(None),
            )
        )
        active_merchants = await self._scalar(select(func.count(Merchant.id)).where(Merchant.verified.is_(True)))

        receipts_stmt = (
            select(Receipt, Member)
            .join(Member, Member.id == Receipt.member_id)
            .order_by(Receipt.submitted_at.desc())
            .limit(RECENT_ACTIVITY_LIMIT)
        )
        registrations_stmt = (
            select(Grc, Member)
            .join(Member, Member.id == Grc.member_id)
            .where(Grc.registered_at.is_not(None))
            .order_by(Grc.registered_at.desc())
            .limit(RECENT_ACTIVITY_LIMIT)
        )
        activity = [
            ActivityItem(
                kind="receipt",
                id=str(receipt.id),
                member_name=member.short_name,
                occurred_at=receipt.submitted_at,
                detail=f"${receipt.amount}" if receipt.amount is not None else "amount pending",
            )
            for receipt, member in (await self._db.execute(receipts_stmt)).all()
        ]
        activity.extend(
            ActivityItem(
                kind="registration",
                id=str(grc.id),
                member_name=member.short_name,
                occurred_at=grc.registered_at,
                detail=f"${grc.denomination} GRC at {grc.grocery_store or 'unknown store'}",
            )
            for grc, member in (await self._db.execute(registrations_stmt)).all()
        )
        activity.sort(key=lambda item: ensure_aware(item.occurred_at), reverse=True)

        return AdminDashboard(
            pending_receipts=pending_receipts,
            gift_cards_pending=gift_cards_pending,
            active_members=active_members,
            active_merchants=active_merchants,
            recent_activity=activity[:RECENT_ACTIVITY_LIMIT],
        )
