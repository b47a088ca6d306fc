"""Platform-wide counters for the admin analytics view."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import utcnow
from grc_api.models import (
    Grc,
    GrcStatusEnum,
    Merchant,
    MonthlyQualification,
    Receipt,
    ReceiptStatusEnum,
    User,
    UserRoleEnum,
)
from grc_api.services.errors import ValidationFailed

TOP_LIMIT = 5
RANGES = ("7d", "30d", "90d", "ytd", "all")
_ROLLING_DAYS = {"7d": 7, "30d": 30, "90d": 90}


@dataclass(slots=True)
class Metric:
    value: int
    change: int


@dataclass(slots=True)
class Window:
    start: datetime
    previous_start: datetime
    previous_end: datetime


@dataclass(slots=True)
class AnalyticsReport:
    total_users: Metric
    active_grcs: Metric
    total_receipts: Metric
    gift_cards_sent: Metric
    users_by_role: dict[str, int] = field(default_factory=dict)
    grcs_by_status: dict[str, int] = field(default_factory=dict)
    receipts_by_status: dict[str, int] = field(default_factory=dict)
    top_merchants: list[tuple[str, str, int]] = field(default_factory=list)
    top_grocery_stores: list[tuple[str, int]] = field(default_factory=list)


def percent_change(current: int, previous: int) -> int:
    """Whole-percent change; growth from nothing counts as 100."""

    if previous == 0:
        return 100 if current > 0 else 0
    return round((current - previous) / previous * 100)


def window_for(range_key: str, *, now: datetime | None = None) -> Window:
    if range_key not in RANGES:
        raise ValidationFailed(f"range must be one of {', '.join(RANGES)}")
    now = now or utcnow()
    if range_key in _ROLLING_DAYS:
        span = timedelta(days=_ROLLING_DAYS[range_key])
        start = now - span
        previous_end = start - timedelta(milliseconds=1)
        return Window(start=start, previous_start=previous_end - span, previous_end=previous_end)
    if range_key == "ytd":
        return Window(
            start=datetime(now.year, 1, 1, tzinfo=timezone.utc),
            previous_start=datetime(now.year - 1, 1, 1, tzinfo=timezone.utc),
            previous_end=datetime(now.year - 1, now.month, min(now.day, 28), tzinfo=timezone.utc),
        )
    return Window(
        start=datetime(2020, 1, 1, tzinfo=timezone.utc),
        previous_start=datetime(2019, 1, 1, tzinfo=timezone.utc),
        previous_end=datetime(2019, 12, 31, tzinfo=timezone.utc),
    )


class AnalyticsService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def _scalar(self, stmt) -> int:
        return int((await self._db.execute(stmt)).scalar_one() or 0)

    async def _grouped(self, column, keys) -> dict[str, int]:
        counts = {key: 0 for key in keys}
        for value, count in (await self._db.execute(select(column, func.count()).group_by(column))).all():
            key = getattr(value, "value", value)
            if key in counts:
                counts[key] = int(count)
        return counts

    async def build(self, range_key: str = "30d") -> AnalyticsReport:
        window = window_for(range_key)

        total_users = await self._scalar(select(func.count(User.id)))
        current_users = await self._scalar(select(func.count(User.id)).where(User.created_at >= window.start))
        previous_users = await self._scalar(
            select(func.count(User.id)).where(
                User.created_at >= window.previous_start,
                User.created_at < window.start,
            )
        )

        active_grcs = await self._scalar(select(func.count(Grc.id)).where(Grc.status == GrcStatusEnum.ACTIVE))
        previously_active = await self._scalar(
            select(func.count(Grc.id)).where(
                Grc.status == GrcStatusEnum.ACTIVE,
                Grc.registered_at < window.start,
            )
        )

        total_receipts = await self._scalar(select(func.count(Receipt.id)))
        current_receipts = await self._scalar(
            select(func.count(Receipt.id)).where(Receipt.submitted_at >= window.start)
        )
        previous_receipts = await self._scalar(
            select(func.count(Receipt.id)).where(
                Receipt.submitted_at >= window.previous_start,
                Receipt.submitted_at < window.start,
            )
        )

        sent = select(func.count(MonthlyQualification.id)).where(MonthlyQualification.reward_sent_at.is_not(None))
        gift_cards_sent = await self._scalar(sent)
        sent_before = await self._scalar(sent.where(MonthlyQualification.reward_sent_at < window.start))

        users_by_role = await self._grouped(User.role, [role.value for role in UserRoleEnum])
        grcs_by_status = await self._grouped(Grc.status, [status.value for status in GrcStatusEnum])
        receipts_by_status = await self._grouped(Receipt.status, [status.value for status in ReceiptStatusEnum])

        active_count = func.count(Grc.id)
        merchants_stmt = (
            select(Merchant.id, Merchant.business_name, active_count)
            .outerjoin(Grc, (Grc.merchant_id == Merchant.id) & (Grc.status == GrcStatusEnum.ACTIVE))
            .group_by(Merchant.id, Merchant.business_name)
            .order_by(active_count.desc(), Merchant.business_name)
            .limit(TOP_LIMIT)
        )
        receipt_count = func.count(Receipt.id)
        stores_stmt = (
            select(Grc.grocery_store, receipt_count)
            .select_from(Receipt)
            .join(Grc, Grc.id == Receipt.grc_id)
            .where(Grc.grocery_store.is_not(None))
            .group_by(Grc.grocery_store)
            .order_by(receipt_count.desc(), Grc.grocery_store)
            .limit(TOP_LIMIT)
        )

        return AnalyticsReport(
            total_users=Metric(total_users, percent_change(current_users, previous_users)),
            active_grcs=Metric(active_grcs, percent_change(active_grcs, previously_active)),
            total_receipts=Metric(total_receipts, percent_change(current_receipts, previous_receipts)),
            gift_cards_sent=Metric(gift_cards_sent, percent_change(gift_cards_sent - sent_before, sent_before)),
            users_by_role={
                "members": users_by_role[UserRoleEnum.MEMBER.value],
                "merchants": users_by_role[UserRoleEnum.MERCHANT.value],
                "admins": users_by_role[UserRoleEnum.ADMIN.value],
            },
            grcs_by_status=grcs_by_status,
            receipts_by_status=receipts_by_status,
            top_merchants=[
                (str(merchant_id), name, int(count))
                for merchant_id, name, count in (await self._db.execute(merchants_stmt)).all()
            ],
            top_grocery_stores=[
                (name, int(count)) for name, count in (await self._db.execute(stores_stmt)).all() if name
            ],
        )
