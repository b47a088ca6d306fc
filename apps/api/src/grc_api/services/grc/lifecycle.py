"""Monthly qualification bookkeeping and certificate completion."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import MONTHLY_RECEIPT_THRESHOLD, current_period, utcnow
from grc_api.domain.grc.calendar import month_key
from grc_api.models import (
    Grc,
    GrcStatusEnum,
    Member,
    Merchant,
    MonthlyQualification,
    QualificationStatusEnum,
)
from grc_api.services.notifications import NotificationService

# States a qualification may still be promoted out of.
_OPEN_STATES = (
    QualificationStatusEnum.IN_PROGRESS,
    QualificationStatusEnum.RECEIPTS_COMPLETE,
)


@dataclass(slots=True)
class QualificationUpdate:
    qualification: MonthlyQualification
    previous_status: QualificationStatusEnum
    grc_completed: bool = False

    @property
    def promoted(self) -> bool:
        return (
            self.previous_status != QualificationStatusEnum.QUALIFIED
            and self.qualification.status == QualificationStatusEnum.QUALIFIED
        )


class QualificationService:
    """Owns the in_progress -> receipts_complete -> qualified transitions.

    Callers are responsible for committing; every method only flushes so the
    transitions can share a transaction with the triggering write (receipt
    review, survey response).
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        notification_service: NotificationService | None = None,
    ) -> None:
        self._db = db_session
        self._notifications = notification_service

    async def get_or_create(
        self,
        member_id: UUID,
        grc_id: UUID,
        month: int,
        year: int,
    ) -> MonthlyQualification:
        stmt = select(MonthlyQualification).where(
            MonthlyQualification.member_id == member_id,
            MonthlyQualification.grc_id == grc_id,
            MonthlyQualification.month == month,
            MonthlyQualification.year == year,
        )
        qualification = (await self._db.execute(stmt)).scalar_one_or_none()
        if qualification is not None:
            return qualification

        qualification = MonthlyQualification(
            member_id=member_id,
            grc_id=grc_id,
            month=month,
            year=year,
            approved_total=Decimal("0"),
            status=QualificationStatusEnum.IN_PROGRESS,
        )
        self._db.add(qualification)
        await self._db.flush()
        logger.debug("Created monthly qualification", grc_id=str(grc_id), month=month, year=year)
        return qualification

    async def apply_approved_receipt(
        self,
        *,
        member_id: UUID,
        grc_id: UUID,
        amount: Decimal | None,
        month: int,
        year: int,
    ) -> QualificationUpdate:
        """Add an approved receipt amount to its month and advance the status."""

        qualification = await self.get_or_create(member_id, grc_id, month, year)
        previous = QualificationStatusEnum(qualification.status)
        total = Decimal(qualification.approved_total or 0) + Decimal(amount or 0)
        qualification.approved_total = total

        result = QualificationUpdate(qualification=qualification, previous_status=previous)
        if previous not in _OPEN_STATES:
            await self._db.flush()
            return result

        if total >= MONTHLY_RECEIPT_THRESHOLD:
            if qualification.survey_completed_at is not None:
                qualification.status = QualificationStatusEnum.QUALIFIED
            elif previous == QualificationStatusEnum.IN_PROGRESS:
                qualification.status = QualificationStatusEnum.RECEIPTS_COMPLETE
        await self._db.flush()

        if result.promoted:
            logger.info("Qualification reached qualified via receipts", qualification_id=str(qualification.id))
            result.grc_completed = await self.check_and_complete_grc(member_id, grc_id)
        elif qualification.status != previous:
            logger.info(
                "Qualification receipts complete",
                qualification_id=str(qualification.id),
                total=str(total),
            )
        return result

    async def record_survey_completion(
        self,
        *,
        member_id: UUID,
        grc_id: UUID,
        month: int,
        year: int,
        completed_at: datetime | None = None,
    ) -> QualificationUpdate:
        qualification = await self.get_or_create(member_id, grc_id, month, year)
        previous = QualificationStatusEnum(qualification.status)
        qualification.survey_completed_at = completed_at or utcnow()

        result = QualificationUpdate(qualification=qualification, previous_status=previous)
        total = Decimal(qualification.approved_total or 0)
        if total >= MONTHLY_RECEIPT_THRESHOLD and previous in _OPEN_STATES:
            qualification.status = QualificationStatusEnum.QUALIFIED
        await self._db.flush()

        if result.promoted:
            logger.info("Qualification reached qualified via survey", qualification_id=str(qualification.id))
            result.grc_completed = await self.check_and_complete_grc(member_id, grc_id)
        return result

    async def count_qualified_months(self, grc_id: UUID) -> int:
        stmt = select(func.count(MonthlyQualification.id)).where(
            MonthlyQualification.grc_id == grc_id,
            MonthlyQualification.status == QualificationStatusEnum.QUALIFIED,
        )
        return int((await self._db.execute(stmt)).scalar_one() or 0)

    async def check_and_complete_grc(self, member_id: UUID, grc_id: UUID) -> bool:
        """Mark an active certificate completed once every month has qualified.

        The next queued certificate is deliberately left pending: the member
        picks a new grocery store before it activates.
        """

        stmt = select(Grc).where(
            Grc.id == grc_id,
            Grc.member_id == member_id,
            Grc.status == GrcStatusEnum.ACTIVE,
        )
        grc = (await self._db.execute(stmt)).scalar_one_or_none()
        if grc is None:
            return False

        qualified = await self.count_qualified_months(grc_id)
        if qualified < grc.months_remaining:
            return False

        grc.status = GrcStatusEnum.COMPLETED
        await self._db.flush()
        logger.info(
            "GRC completed",
            grc_id=str(grc_id),
            qualified_months=qualified,
            months_remaining=grc.months_remaining,
        )

        if self._notifications is not None:
            member = await self._db.get(Member, member_id)
            merchant = await self._db.get(Merchant, grc.merchant_id)
            if member is not None and merchant is not None:
                await self._notifications.send_grc_completed(grc, member, merchant, qualified_months=qualified)
        return True

    async def forfeit_elapsed_months(self, *, now: datetime | None = None) -> int:
        """Forfeit open qualifications whose month has already ended."""

        month, year = current_period(now)
        stmt = (
            update(MonthlyQualification)
            .where(
                MonthlyQualification.status.in_(
                    [QualificationStatusEnum.IN_PROGRESS, QualificationStatusEnum.RECEIPTS_COMPLETE]
                ),
                (MonthlyQualification.year * 12 + (MonthlyQualification.month - 1)) < month_key(month, year),
            )
            .values(status=QualificationStatusEnum.FORFEITED)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        count = result.rowcount or 0
        if count:
            logger.info("Forfeited elapsed qualifications", count=count, month=month, year=year)
        return count

    async def expire_unclaimed_grcs(self, *, max_age_days: int, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - timedelta(days=max_age_days)
        stmt = (
            update(Grc)
            .where(
                Grc.status == GrcStatusEnum.PENDING,
                Grc.member_id.is_(None),
                Grc.issued_at.is_not(None),
                Grc.issued_at < cutoff,
            )
            .values(status=GrcStatusEnum.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        count = result.rowcount or 0
        if count:
            logger.info("Expired unclaimed GRCs", count=count, max_age_days=max_age_days)
        return count
