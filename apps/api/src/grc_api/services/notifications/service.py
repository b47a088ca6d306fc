"""High-level notification service for transactional emails."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.core.settings import get_settings
from grc_api.domain.grc import MONTHLY_REWARD_AMOUNT
from grc_api.models import EmailPreference, Grc, GrcPurchase, Member, Merchant, MonthlyQualification, User

from .backend import EmailBackend, SMTPEmailBackend
from .templates import (
    RenderedTemplate,
    render_gift_card_sent,
    render_grc_activated,
    render_grc_completed,
    render_grc_issued,
    render_magic_link,
    render_merchant_welcome,
    render_order_decision,
    render_order_received,
    render_receipt_rejected,
)


@dataclass
class NotificationEvent:
    """Representation of a notification that was sent."""

    recipient: str
    subject: str
    body_text: str
    body_html: str | None
    event_type: str
    metadata: dict[str, Any]


class NotificationService:
    """Coordinates transactional email delivery via pluggable backends."""

    def __init__(
        self,
        db_session: AsyncSession,
        backend: Optional[EmailBackend] = None,
    ) -> None:
        self._db = db_session
        self._backend = backend or self._build_default_backend()
        self._events: list[NotificationEvent] = []
        self._settings = get_settings()

    @property
    def sent_events(self) -> list[NotificationEvent]:
        """Expose events (useful for tests when using in-memory backend)."""
        return self._events

    def _url(self, path: str) -> str:
        return f"{self._settings.frontend_url.rstrip('/')}{path}"

    async def send_magic_link(self, email: str, link_url: str) -> None:
        template = render_magic_link(link_url, expires_in_minutes=self._settings.magic_link_expiry_minutes)
        await self._deliver(email, template, event_type="magic_link", metadata={})

    async def send_grc_issued(self, grc: Grc, merchant: Merchant, claim_url: str) -> None:
        if not grc.recipient_email:
            return
        template = render_grc_issued(
            recipient_name=grc.recipient_name,
            merchant_name=merchant.business_name,
            denomination=grc.denomination,
            months=grc.months_remaining,
            claim_url=claim_url,
        )
        await self._deliver(
            grc.recipient_email,
            template,
            event_type="grc_issued",
            metadata={"grc_id": str(grc.id), "merchant_id": str(merchant.id)},
        )

    async def send_grc_activated(
        self,
        grc: Grc,
        member: Member,
        merchant: Merchant,
        *,
        bonus_month: bool,
    ) -> None:
        user = await self._transactional_recipient(member.user_id)
        if user is None:
            return
        template = render_grc_activated(
            member_name=member.first_name,
            merchant_name=merchant.business_name,
            denomination=grc.denomination,
            grocery_store=grc.grocery_store or "your grocery store",
            start_month=grc.start_month,
            start_year=grc.start_year,
            months=grc.months_remaining,
            bonus_month=bonus_month,
            dashboard_url=self._url("/member"),
        )
        await self._deliver(user.email, template, event_type="grc_activated", metadata={"grc_id": str(grc.id)})

    async def send_receipt_rejected(
        self,
        member: Member,
        *,
        receipt_id: UUID,
        reason: str,
        notes: str | None,
        reupload_until: datetime | None,
    ) -> None:
        user = await self._transactional_recipient(member.user_id)
        if user is None:
            return
        template = render_receipt_rejected(
            member_name=member.first_name,
            reason=reason,
            notes=notes,
            reupload_until=reupload_until,
            upload_url=self._url("/member/upload"),
        )
        await self._deliver(
            user.email,
            template,
            event_type="receipt_rejected",
            metadata={"receipt_id": str(receipt_id)},
        )

    async def send_gift_card_sent(self, qualification: MonthlyQualification, member: Member) -> None:
        user = await self._transactional_recipient(member.user_id)
        if user is None:
            return
        template = render_gift_card_sent(
            member_name=member.first_name,
            month=qualification.month,
            year=qualification.year,
            amount=MONTHLY_REWARD_AMOUNT,
            tracking_number=qualification.gift_card_tracking_number,
        )
        await self._deliver(
            user.email,
            template,
            event_type="gift_card_sent",
            metadata={"qualification_id": str(qualification.id)},
        )

    async def send_grc_completed(self, grc: Grc, member: Member, merchant: Merchant, *, qualified_months: int) -> None:
        user = await self._transactional_recipient(member.user_id)
        if user is None:
            return
        template = render_grc_completed(
            member_name=member.first_name,
            merchant_name=merchant.business_name,
            months=qualified_months,
            total_earned=MONTHLY_REWARD_AMOUNT * qualified_months,
            grcs_url=self._url("/member/grcs"),
        )
        await self._deliver(user.email, template, event_type="grc_completed", metadata={"grc_id": str(grc.id)})

    async def send_merchant_welcome(self, email: str, *, business_name: str, sign_in_url: str, trial_quantity: int) -> None:
        template = render_merchant_welcome(
            business_name=business_name,
            sign_in_url=sign_in_url,
            trial_quantity=trial_quantity,
        )
        await self._deliver(email, template, event_type="merchant_welcome", metadata={})

    async def send_order_received(self, merchant: Merchant, purchases: Sequence[GrcPurchase]) -> None:
        recipients = await self._admin_recipients()
        if not recipients or not purchases:
            return
        template = render_order_received(
            business_name=merchant.business_name,
            lines=[(p.denomination, p.quantity, Decimal(p.total_cost)) for p in purchases],
            payment_method=purchases[0].payment_method.value,
            admin_url=self._url("/admin/orders"),
        )
        for recipient in recipients:
            await self._deliver(
                recipient,
                template,
                event_type="order_received",
                metadata={"merchant_id": str(merchant.id), "purchase_ids": [str(p.id) for p in purchases]},
            )

    async def send_order_decision(self, purchase: GrcPurchase, merchant: Merchant, *, approved: bool) -> None:
        user = await self._transactional_recipient(merchant.user_id)
        if user is None:
            return
        template = render_order_decision(
            business_name=merchant.business_name,
            denomination=purchase.denomination,
            quantity=purchase.quantity,
            approved=approved,
            reason=purchase.rejection_reason,
        )
        await self._deliver(
            user.email,
            template,
            event_type="order_approved" if approved else "order_rejected",
            metadata={"purchase_id": str(purchase.id)},
        )

    def _build_default_backend(self) -> Optional[EmailBackend]:
        settings = get_settings()
        if not settings.smtp_host or not settings.smtp_sender_email:
            return None

        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender_email=settings.smtp_sender_email,
        )

    async def _transactional_recipient(self, user_id: UUID | None) -> Optional[User]:
        """Return the user when they still accept transactional email."""
        if user_id is None:
            return None
        user = await self._db.get(User, user_id)
        if user is None or not user.email:
            return None

        stmt = select(EmailPreference).where(EmailPreference.user_id == user_id)
        preference = (await self._db.execute(stmt)).scalar_one_or_none()
        if preference is not None and (preference.unsubscribed_all or not preference.transactional_emails):
            logger.debug("Transactional email suppressed by preference", user_id=str(user_id))
            return None
        return user

    async def _admin_recipients(self) -> list[str]:
        configured = list(self._settings.admin_notification_recipients)
        if configured:
            return configured
        stmt = select(User.email).where(User.role == "admin")
        return [email for email in (await self._db.execute(stmt)).scalars().all() if email]

    async def _deliver(
        self,
        recipient: str,
        template: RenderedTemplate,
        *,
        event_type: str,
        metadata: dict[str, Any],
    ) -> None:
        """Send using active backend and record emitted event."""
        if self._backend is None:
            logger.info("Email backend not configured; skipping delivery", event_type=event_type)
            return

        try:
            await self._backend.send_email(
                recipient,
                template.subject,
                template.text_body,
                body_html=template.html_body,
            )
        except Exception as exc:
            # Delivery failures must not roll back the business operation that triggered them.
            logger.exception("Email delivery failed", event_type=event_type, error=str(exc))
            return

        self._events.append(
            NotificationEvent(
                recipient=recipient,
                subject=template.subject,
                body_text=template.text_body,
                body_html=template.html_body,
                event_type=event_type,
                metadata=metadata,
            )
        )
        logger.info("Notification sent", event_type=event_type, **metadata)
