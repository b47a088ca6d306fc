"""Admin receipt review and its effect on monthly qualification."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import ensure_aware, period_of, utcnow
from grc_api.models import Grc, Member, Receipt, ReceiptStatusEnum, User
from grc_api.services.errors import GrcServiceError, NotFoundError, ValidationFailed
from grc_api.services.grc.lifecycle import QualificationService, QualificationUpdate
from grc_api.services.notifications import NotificationService

DEFAULT_REUPLOAD_DAYS = 7
MAX_BULK_RECEIPTS = 100


@dataclass(slots=True)
class ReceiptReviewRow:
    receipt: Receipt
    member: Member
    email: str
    grc: Grc


@dataclass(slots=True)
class ReceiptPage:
    rows: list[ReceiptReviewRow]
    total: int
    page: int
    limit: int


@dataclass(slots=True)
class ReviewOutcome:
    receipt: Receipt
    qualification: QualificationUpdate | None = None


@dataclass(slots=True)
class BulkReviewResult:
    updated: int = 0
    failed: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)


class ReceiptModerationService:
    def __init__(
        self,
        db_session: AsyncSession,
        *,
        notification_service: NotificationService | None = None,
    ) -> None:
        self._db = db_session
        self._notifications = notification_service
        self._qualifications = QualificationService(db_session, notification_service=notification_service)

    async def list_receipts(
        self,
        *,
        status: ReceiptStatusEnum | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> ReceiptPage:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        base = (
            select(Receipt, Member, User.email, Grc)
            .join(Member, Member.id == Receipt.member_id)
            .join(User, User.id == Member.user_id)
            .join(Grc, Grc.id == Receipt.grc_id)
        )
        count_stmt = select(func.count(Receipt.id))
        if status is not None:
            base = base.where(Receipt.status == status)
            count_stmt = count_stmt.where(Receipt.status == status)

        stmt = base.order_by(Receipt.submitted_at.desc()).limit(limit).offset((page - 1) * limit)
        rows = [
            ReceiptReviewRow(receipt=row[0], member=row[1], email=row[2], grc=row[3])
            for row in (await self._db.execute(stmt)).all()
        ]
        total = int((await self._db.execute(count_stmt)).scalar_one() or 0)
        return ReceiptPage(rows=rows, total=total, page=page, limit=limit)

    async def _load_pending(self, receipt_id: UUID) -> Receipt:
        receipt = await self._db.get(Receipt, receipt_id)
        if receipt is None:
            raise NotFoundError("Receipt not found")
        if receipt.status != ReceiptStatusEnum.PENDING:
            raise ValidationFailed("Receipt has already been reviewed")
        return receipt

    async def approve(self, receipt_id: UUID, *, reviewer_id: UUID | None) -> ReviewOutcome:
        receipt = await self._load_pending(receipt_id)
        receipt.status = ReceiptStatusEnum.APPROVED
        receipt.reviewed_at = utcnow()
        receipt.reviewed_by = reviewer_id

        if receipt.receipt_date is not None:
            month, year = period_of(receipt.receipt_date)
        else:
            month, year = period_of(ensure_aware(receipt.submitted_at or utcnow()))

        update = await self._qualifications.apply_approved_receipt(
            member_id=receipt.member_id,
            grc_id=receipt.grc_id,
            amount=receipt.amount,
            month=month,
            year=year,
        )
        await self._db.commit()
        await self._db.refresh(receipt)
        logger.info(
            "Receipt approved",
            receipt_id=str(receipt.id),
            month=month,
            year=year,
            total=str(update.qualification.approved_total),
            qualification_status=update.qualification.status.value,
        )
        return ReviewOutcome(receipt=receipt, qualification=update)

    async def reject(
        self,
        receipt_id: UUID,
        *,
        reviewer_id: UUID | None,
        reason: str | None,
        notes: str | None = None,
        reupload_days: int | None = None,
    ) -> ReviewOutcome:
        if not (reason or "").strip():
            raise ValidationFailed("rejectionReason is required")
        days = DEFAULT_REUPLOAD_DAYS if reupload_days is None else reupload_days
        if not 1 <= days <= 30:
            raise ValidationFailed("reuploadDays must be between 1 and 30")

        receipt = await self._load_pending(receipt_id)
        now = utcnow()
        receipt.status = ReceiptStatusEnum.REJECTED
        receipt.rejection_reason = reason.strip()
        receipt.rejection_notes = notes
        receipt.reupload_allowed_until = now + timedelta(days=days)
        receipt.reviewed_at = now
        receipt.reviewed_by = reviewer_id
        await self._db.commit()
        await self._db.refresh(receipt)
        logger.info("Receipt rejected", receipt_id=str(receipt.id), reupload_days=days)

        if self._notifications is not None:
            member = await self._db.get(Member, receipt.member_id)
            if member is not None:
                await self._notifications.send_receipt_rejected(
                    member,
                    receipt_id=receipt.id,
                    reason=receipt.rejection_reason,
                    notes=notes,
                    reupload_until=receipt.reupload_allowed_until,
                )
        return ReviewOutcome(receipt=receipt)

    async def bulk_review(
        self,
        receipt_ids: Sequence[UUID],
        *,
        action: str,
        reviewer_id: UUID | None,
        reason: str | None = None,
        reupload_days: int | None = None,
    ) -> BulkReviewResult:
        if not 1 <= len(receipt_ids) <= MAX_BULK_RECEIPTS:
            raise ValidationFailed(f"Between 1 and {MAX_BULK_RECEIPTS} receipts are required")
        if action not in ("approve", "reject"):
            raise ValidationFailed("action must be approve or reject")
        if action == "reject" and not (reason or "").strip():
            raise ValidationFailed("rejectionReason is required")

        result = BulkReviewResult()
        for receipt_id in receipt_ids:
            try:
                if action == "approve":
                    await self.approve(receipt_id, reviewer_id=reviewer_id)
                else:
                    await self.reject(
                        receipt_id,
                        reviewer_id=reviewer_id,
                        reason=reason,
                        reupload_days=reupload_days,
                    )
            except GrcServiceError as exc:
                result.failed += 1
                result.errors.append({"id": str(receipt_id), "error": exc.message})
                continue
            result.updated += 1
        logger.info("Bulk receipt review finished", action=action, updated=result.updated, failed=result.failed)
        return result
