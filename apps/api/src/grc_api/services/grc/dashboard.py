from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import MONTHLY_RECEIPT_THRESHOLD, MONTHLY_REWARD_AMOUNT, current_period
from grc_api.domain.grc.calendar import month_key
from grc_api.models import Grc, GrcStatusEnum, Member, Merchant, MonthlyQualification, Receipt, ReceiptStatusEnum, Survey

from .lifecycle import QualificationService


@dataclass(slots=True)
class MemberDashboard:
    this_month_receipts: Decimal
    amount_remaining: Decimal
    total_earned: Decimal
    months_qualified: int
    pending_receipts: int
    active_grc: Grc | None = None
    merchant: Merchant | None = None
    current_qualification: MonthlyQualification | None = None
    active_survey: Survey | None = None

    @property
    def has_survey(self) -> bool:
        return self.active_survey is not None


class MemberDashboardService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._qualifications = QualificationService(db_session)

    async def build(self, member: Member) -> MemberDashboard:
        """Summarise the member's active certificate and this month's progress.

        The current month's qualification is created on first view once the
        certificate's start month has arrived.
        """

        stmt = select(Grc).where(Grc.member_id == member.id, Grc.status == GrcStatusEnum.ACTIVE).limit(1)
        grc = (await self._db.execute(stmt)).scalar_one_or_none()
        if grc is None:
            return MemberDashboard(
                this_month_receipts=Decimal("0"),
                amount_remaining=MONTHLY_RECEIPT_THRESHOLD,
                total_earned=Decimal("0"),
                months_qualified=0,
                pending_receipts=0,
            )

        month, year = current_period()
        qualification: MonthlyQualification | None = None
        if grc.start_month and grc.start_year and month_key(month, year) >= month_key(grc.start_month, grc.start_year):
            qualification = await self._qualifications.get_or_create(member.id, grc.id, month, year)
            await self._db.commit()

        months_qualified = await self._qualifications.count_qualified_months(grc.id)
        total = Decimal(qualification.approved_total or 0) if qualification else Decimal("0")

        pending_stmt = select(func.count(Receipt.id)).where(
            Receipt.grc_id == grc.id,
            Receipt.status == ReceiptStatusEnum.PENDING,
        )
        pending_receipts = int((await self._db.execute(pending_stmt)).scalar_one() or 0)

        survey_stmt = (
            select(Survey)
            .where(Survey.merchant_id == grc.merchant_id, Survey.is_active.is_(True))
            .order_by(Survey.created_at.desc())
            .limit(1)
        )
        survey = (await self._db.execute(survey_stmt)).scalar_one_or_none()

        return MemberDashboard(
            this_month_receipts=total,
            amount_remaining=max(Decimal("0"), MONTHLY_RECEIPT_THRESHOLD - total),
            total_earned=MONTHLY_REWARD_AMOUNT * months_qualified,
            months_qualified=months_qualified,
            pending_receipts=pending_receipts,
            active_grc=grc,
            merchant=await self._db.get(Merchant, grc.merchant_id),
            current_qualification=qualification,
            active_survey=survey,
        )
