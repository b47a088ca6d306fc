from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.models import Grc, GrcStatusEnum, Member, Merchant, Review
from grc_api.services.grc.inventory import InventoryService, InventorySnapshot

RECENT_GRC_LIMIT = 10


@dataclass(slots=True)
class MerchantDashboard:
    grc_counts: dict[str, int]
    active_members: int
    review_count: int
    average_review_words: float
    inventory: InventorySnapshot
    recent: list[tuple[Grc, Member | None]] = field(default_factory=list)


class MerchantDashboardService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._inventory = InventoryService(db_session)

    async def build(self, merchant: Merchant) -> MerchantDashboard:
        status_stmt = (
            select(Grc.status, func.count(Grc.id))
            .where(Grc.merchant_id == merchant.id)
            .group_by(Grc.status)
        )
        by_status = {GrcStatusEnum(row[0]).value: int(row[1]) for row in (await self._db.execute(status_stmt)).all()}
        counts = {
            "active": by_status.get(GrcStatusEnum.ACTIVE.value, 0),
            "completed": by_status.get(GrcStatusEnum.COMPLETED.value, 0),
            "pending": by_status.get(GrcStatusEnum.PENDING.value, 0),
            "total": sum(by_status.values()),
        }

        members_stmt = select(func.count(func.distinct(Grc.member_id))).where(
            Grc.merchant_id == merchant.id,
            Grc.status == GrcStatusEnum.ACTIVE,
            Grc.member_id.is_not(None),
        )
        active_members = int((await self._db.execute(members_stmt)).scalar_one() or 0)

        review_stmt = select(func.count(Review.id), func.avg(Review.word_count)).where(
            Review.merchant_id == merchant.id
        )
        review_count, average_words = (await self._db.execute(review_stmt)).one()

        recent_stmt = (
            select(Grc, Member)
            .outerjoin(Member, Member.id == Grc.member_id)
            .where(Grc.merchant_id == merchant.id)
            .order_by(Grc.created_at.desc())
            .limit(RECENT_GRC_LIMIT)
        )
        recent = [(row[0], row[1]) for row in (await self._db.execute(recent_stmt)).all()]

        return MerchantDashboard(
            grc_counts=counts,
            active_members=active_members,
            review_count=int(review_count or 0),
            average_review_words=round(float(average_words or 0), 1),
            inventory=await self._inventory.get_inventory(merchant.id),
            recent=recent,
        )
