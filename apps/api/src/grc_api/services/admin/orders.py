from __future__ import annotations

from typing import Literal
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import utcnow
from grc_api.models import GrcPurchase, Merchant, PaymentStatusEnum
from grc_api.services.errors import NotFoundError, ValidationFailed
from grc_api.services.notifications import NotificationService

OrderAction = Literal["approve", "reject"]


class OrderReviewService:
    """Admin confirmation of merchant inventory orders.

    Approving only confirms payment; certificates are issued later by the
    merchant against the confirmed stock.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        notification_service: NotificationService | None = None,
    ) -> None:
        self._db = db_session
        self._notifications = notification_service

    async def list_orders(self, *, status: PaymentStatusEnum | None = None) -> list[tuple[GrcPurchase, Merchant]]:
        stmt = select(GrcPurchase, Merchant).join(Merchant, Merchant.id == GrcPurchase.merchant_id)
        if status is not None:
            stmt = stmt.where(GrcPurchase.payment_status == status)
        stmt = stmt.order_by(GrcPurchase.created_at.desc())
        return [(row[0], row[1]) for row in (await self._db.execute(stmt)).all()]

    async def review(
        self,
        purchase_id: UUID,
        *,
        action: OrderAction,
        reviewer_id: UUID | None,
        notes: str | None = None,
        reason: str | None = None,
    ) -> GrcPurchase:
        purchase = await self._db.get(GrcPurchase, purchase_id)
        if purchase is None:
            raise NotFoundError("Order not found")
        if purchase.payment_status != PaymentStatusEnum.PENDING:
            raise ValidationFailed("Only pending orders can be reviewed")

        if action == "approve":
            purchase.payment_status = PaymentStatusEnum.CONFIRMED
            purchase.payment_confirmed_at = utcnow()
            purchase.payment_confirmed_by = reviewer_id
            if notes:
                purchase.payment_notes = notes
        elif action == "reject":
            if not (reason or "").strip():
                raise ValidationFailed("A rejection reason is required")
            purchase.payment_status = PaymentStatusEnum.FAILED
            purchase.rejection_reason = reason.strip()
        else:
            raise ValidationFailed("action must be approve or reject")

        await self._db.commit()
        await self._db.refresh(purchase)
        logger.info(
            "Certificate order reviewed",
            purchase_id=str(purchase.id),
            action=action,
            payment_status=purchase.payment_status.value,
        )

        if self._notifications is not None:
            merchant = await self._db.get(Merchant, purchase.merchant_id)
            if merchant is not None:
                await self._notifications.send_order_decision(purchase, merchant, approved=action == "approve")
        return purchase
