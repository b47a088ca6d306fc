"""Broadcast campaign drafting, delivery, tracking and email preferences."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import utcnow
from grc_api.models import (
    CampaignRecipient,
    CampaignRecipientStatusEnum,
    CampaignStatusEnum,
    EmailCampaign,
    EmailPreference,
    Member,
    Merchant,
    RecipientListEnum,
    RecipientTypeEnum,
    User,
    UserRoleEnum,
)
from grc_api.services.errors import NotFoundError, UpstreamError, ValidationFailed

from .postmark import BroadcastRecipient, PostmarkBroadcastClient, personalize

_LIST_ROLES = {
    RecipientListEnum.MEMBERS: UserRoleEnum.MEMBER.value,
    RecipientListEnum.MERCHANTS: UserRoleEnum.MERCHANT.value,
    RecipientListEnum.ADMINS: UserRoleEnum.ADMIN.value,
}

_EDITABLE_FIELDS = ("subject", "preview_text", "content", "recipient_type", "recipient_lists", "individual_recipient_id")


@dataclass(slots=True)
class CampaignDraft:
    subject: str
    content: str
    recipient_type: RecipientTypeEnum
    recipient_lists: list[RecipientListEnum] | None = None
    individual_recipient_id: UUID | None = None
    preview_text: str | None = None


@dataclass(slots=True)
class ResolvedRecipient:
    user_id: UUID
    email: str
    name: str | None


@dataclass(slots=True)
class RecipientPage:
    rows: list[CampaignRecipient]
    total: int
    page: int
    limit: int


@dataclass(slots=True)
class PreferenceSnapshot:
    marketing_emails: bool = True
    transactional_emails: bool = True
    unsubscribed_all: bool = False


def _validate_targeting(
    recipient_type: RecipientTypeEnum,
    lists: Sequence[RecipientListEnum] | None,
    individual_id: UUID | None,
) -> None:
    if recipient_type == RecipientTypeEnum.INDIVIDUAL and individual_id is None:
        raise ValidationFailed("individualRecipientId is required for individual campaigns")
    if recipient_type == RecipientTypeEnum.LISTS and not lists:
        raise ValidationFailed("At least one recipient list is required")


class CampaignService:
    def __init__(
        self,
        db_session: AsyncSession,
        *,
        postmark_client: PostmarkBroadcastClient | None = None,
    ) -> None:
        self._db = db_session
        self._postmark = postmark_client or PostmarkBroadcastClient()

    # Drafts

    async def create(self, draft: CampaignDraft, *, created_by: UUID | None) -> EmailCampaign:
        if not draft.subject.strip() or not draft.content.strip():
            raise ValidationFailed("Subject and content are required")
        _validate_targeting(draft.recipient_type, draft.recipient_lists, draft.individual_recipient_id)

        campaign = EmailCampaign(
            subject=draft.subject.strip(),
            preview_text=draft.preview_text,
            content=draft.content,
            recipient_type=draft.recipient_type,
            recipient_lists=[item.value for item in draft.recipient_lists or []] or None,
            individual_recipient_id=draft.individual_recipient_id,
            status=CampaignStatusEnum.DRAFT,
            created_by=created_by,
        )
        campaign.recipient_count = len(
            await self.resolve_recipients(
                draft.recipient_type,
                lists=draft.recipient_lists,
                individual_id=draft.individual_recipient_id,
            )
        )
        self._db.add(campaign)
        await self._db.commit()
        await self._db.refresh(campaign)
        logger.info("Campaign draft created", campaign_id=str(campaign.id))
        return campaign

    async def list_campaigns(self) -> list[EmailCampaign]:
        stmt = select(EmailCampaign).order_by(EmailCampaign.created_at.desc())
        return list((await self._db.execute(stmt)).scalars().all())

    async def get(self, campaign_id: UUID) -> EmailCampaign:
        campaign = await self._db.get(EmailCampaign, campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign not found")
        return campaign

    async def _get_draft(self, campaign_id: UUID) -> EmailCampaign:
        campaign = await self.get(campaign_id)
        if campaign.status != CampaignStatusEnum.DRAFT:
            raise ValidationFailed("Only draft campaigns can be changed")
        return campaign

    async def update(self, campaign_id: UUID, changes: Mapping[str, Any]) -> EmailCampaign:
        campaign = await self._get_draft(campaign_id)
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationFailed(f"Unknown campaign fields: {', '.join(sorted(unknown))}")

        for key, value in changes.items():
            if key == "recipient_lists" and value is not None:
                value = [RecipientListEnum(item).value for item in value] or None
            setattr(campaign, key, value)

        recipient_type = RecipientTypeEnum(campaign.recipient_type)
        lists = [RecipientListEnum(item) for item in campaign.recipient_lists or []]
        _validate_targeting(recipient_type, lists, campaign.individual_recipient_id)
        campaign.recipient_count = len(
            await self.resolve_recipients(recipient_type, lists=lists, individual_id=campaign.individual_recipient_id)
        )
        await self._db.commit()
        await self._db.refresh(campaign)
        return campaign

    async def delete(self, campaign_id: UUID) -> None:
        campaign = await self._get_draft(campaign_id)
        await self._db.delete(campaign)
        await self._db.commit()
        logger.info("Campaign draft deleted", campaign_id=str(campaign_id))

    # Recipients

    async def resolve_recipients(
        self,
        recipient_type: RecipientTypeEnum,
        *,
        lists: Iterable[RecipientListEnum] | None = None,
        individual_id: UUID | None = None,
    ) -> list[ResolvedRecipient]:
        """Users targeted by the campaign who still accept marketing email."""

        stmt = (
            select(User, Member.first_name, Member.last_name, Merchant.business_name)
            .outerjoin(Member, Member.user_id == User.id)
            .outerjoin(Merchant, Merchant.user_id == User.id)
            .outerjoin(EmailPreference, EmailPreference.user_id == User.id)
            .where(
                or_(
                    EmailPreference.id.is_(None),
                    (EmailPreference.unsubscribed_all.is_(False)) & (EmailPreference.marketing_emails.is_(True)),
                )
            )
        )
        if recipient_type == RecipientTypeEnum.INDIVIDUAL:
            if individual_id is None:
                return []
            stmt = stmt.where(User.id == individual_id)
        else:
            roles = {_LIST_ROLES[RecipientListEnum(item)] for item in lists or []}
            if not roles:
                return []
            stmt = stmt.where(User.role.in_(sorted(roles)))

        recipients: dict[UUID, ResolvedRecipient] = {}
        for user, first_name, last_name, business_name in (await self._db.execute(stmt)).all():
            if user.id in recipients:
                continue
            name = " ".join(part for part in (first_name, last_name) if part) or business_name
            recipients[user.id] = ResolvedRecipient(user_id=user.id, email=user.email, name=name or None)
        return list(recipients.values())

    async def count_recipients(
        self,
        *,
        lists: Sequence[RecipientListEnum] | None = None,
        individual_id: UUID | None = None,
    ) -> int:
        recipient_type = RecipientTypeEnum.INDIVIDUAL if individual_id else RecipientTypeEnum.LISTS
        return len(await self.resolve_recipients(recipient_type, lists=lists, individual_id=individual_id))

    async def list_recipients(self, campaign_id: UUID, *, page: int = 1, limit: int = 50) -> RecipientPage:
        await self.get(campaign_id)
        page = max(page, 1)
        limit = min(max(limit, 1), 200)
        stmt = (
            select(CampaignRecipient)
            .where(CampaignRecipient.campaign_id == campaign_id)
            .order_by(CampaignRecipient.email)
            .limit(limit)
            .offset((page - 1) * limit)
        )
        count_stmt = select(func.count(CampaignRecipient.id)).where(CampaignRecipient.campaign_id == campaign_id)
        rows = list((await self._db.execute(stmt)).scalars().all())
        total = int((await self._db.execute(count_stmt)).scalar_one() or 0)
        return RecipientPage(rows=rows, total=total, page=page, limit=limit)

    # Delivery

    async def send(self, campaign_id: UUID) -> EmailCampaign:
        campaign = await self._get_draft(campaign_id)
        campaign.status = CampaignStatusEnum.SENDING
        await self._db.commit()

        resolved = await self.resolve_recipients(
            RecipientTypeEnum(campaign.recipient_type),
            lists=[RecipientListEnum(item) for item in campaign.recipient_lists or []],
            individual_id=campaign.individual_recipient_id,
        )
        if not resolved:
            campaign.status = CampaignStatusEnum.FAILED
            await self._db.commit()
            logger.warning("Campaign has no eligible recipients", campaign_id=str(campaign.id))
            raise ValidationFailed("No eligible recipients for this campaign")

        rows = [
            CampaignRecipient(
                campaign_id=campaign.id,
                user_id=recipient.user_id,
                email=recipient.email,
                name=recipient.name,
                status=CampaignRecipientStatusEnum.PENDING,
            )
            for recipient in resolved
        ]
        self._db.add_all(rows)
        await self._db.flush()

        by_id = {str(row.id): row for row in rows}
        result = await self._postmark.send(
            [
                BroadcastRecipient(email=row.email, name=row.name, user_id=str(row.user_id), recipient_id=str(row.id))
                for row in rows
            ],
            subject=campaign.subject,
            html_content=campaign.content,
            campaign_id=str(campaign.id),
            preview_text=campaign.preview_text,
        )

        now = utcnow()
        for outcome in result.outcomes:
            row = by_id[outcome.recipient.recipient_id]
            if outcome.ok:
                row.status = CampaignRecipientStatusEnum.SENT
                row.postmark_message_id = outcome.message_id
                row.sent_at = now
            else:
                row.status = CampaignRecipientStatusEnum.FAILED
                row.error_message = outcome.error

        campaign.status = CampaignStatusEnum.SENT
        campaign.sent_at = now
        campaign.recipient_count = len(rows)
        campaign.total_sent = result.sent
        campaign.total_failed = result.failed
        await self._db.commit()
        await self._db.refresh(campaign)
        logger.info(
            "Campaign sent",
            campaign_id=str(campaign.id),
            total_sent=campaign.total_sent,
            total_failed=campaign.total_failed,
        )
        return campaign

    async def send_test(
        self,
        *,
        to: str,
        subject: str,
        content: str,
        preview_text: str | None = None,
    ) -> str | None:
        """Deliver a single "[TEST]" copy of a draft; returns the Postmark message id."""

        if not subject.strip() or not content.strip():
            raise ValidationFailed("Subject, content, and test email are required")
        result = await self._postmark.send(
            [BroadcastRecipient(email=to, name="Test Recipient")],
            subject=f"[TEST] {subject}",
            html_content=content,
            preview_text=preview_text,
        )
        outcome = result.outcomes[0]
        if not outcome.ok:
            raise UpstreamError(outcome.error or "Failed to send test email")
        logger.info("Test email sent", message_id=outcome.message_id)
        return outcome.message_id

    def preview(self, content: str, *, subject: str = "", sample_name: str | None = None) -> tuple[str, str]:
        sample = BroadcastRecipient(email="preview@localcityplaces.com", name=sample_name or "Jordan Smith")
        message = self._postmark.build_message(sample, subject=subject, html_content=content)
        return message["Subject"], message["HtmlBody"]

    # Tracking

    async def handle_webhook(self, payload: Mapping[str, Any]) -> bool:
        """Apply a Postmark open/click/bounce event. Returns whether it matched a recipient."""

        message_id = payload.get("MessageID")
        record_type = payload.get("RecordType")
        if not message_id or not record_type:
            return False

        stmt = select(CampaignRecipient).where(CampaignRecipient.postmark_message_id == str(message_id))
        recipient = (await self._db.execute(stmt)).scalar_one_or_none()
        if recipient is None:
            logger.debug("Postmark event for unknown message", record_type=record_type)
            return False

        now = utcnow()
        if record_type == "Open":
            recipient.opened_at = recipient.opened_at or now
        elif record_type == "Click":
            recipient.clicked_at = recipient.clicked_at or now
            recipient.opened_at = recipient.opened_at or now
        elif record_type in ("Bounce", "SpamComplaint"):
            recipient.status = CampaignRecipientStatusEnum.BOUNCED
            recipient.bounced_at = recipient.bounced_at or now
        else:
            return False

        await self._db.flush()
        await self._recompute_stats(recipient.campaign_id)
        await self._db.commit()
        logger.info("Postmark event recorded", record_type=record_type, campaign_id=str(recipient.campaign_id))
        return True

    async def sync_stats(self, campaign_id: UUID) -> EmailCampaign:
        campaign = await self.get(campaign_id)
        await self._recompute_stats(campaign_id, include_sent=True)
        await self._db.commit()
        await self._db.refresh(campaign)
        return campaign

    async def _recompute_stats(self, campaign_id: UUID, *, include_sent: bool = False) -> None:
        campaign = await self._db.get(EmailCampaign, campaign_id)
        if campaign is None:
            return
        base = CampaignRecipient.campaign_id == campaign_id
        opens = select(func.count(CampaignRecipient.id)).where(base, CampaignRecipient.opened_at.is_not(None))
        clicks = select(func.count(CampaignRecipient.id)).where(base, CampaignRecipient.clicked_at.is_not(None))
        bounces = select(func.count(CampaignRecipient.id)).where(
            base, CampaignRecipient.status == CampaignRecipientStatusEnum.BOUNCED
        )
        campaign.unique_opens = int((await self._db.execute(opens)).scalar_one() or 0)
        campaign.unique_clicks = int((await self._db.execute(clicks)).scalar_one() or 0)
        campaign.total_bounces = int((await self._db.execute(bounces)).scalar_one() or 0)
        if include_sent:
            sent = select(func.count(CampaignRecipient.id)).where(base, CampaignRecipient.sent_at.is_not(None))
            campaign.total_sent = int((await self._db.execute(sent)).scalar_one() or 0)


class EmailPreferenceService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def _find_user(self, *, user_id: UUID | None, email: str | None) -> User | None:
        if user_id is not None:
            return await self._db.get(User, user_id)
        if email:
            stmt = select(User).where(func.lower(User.email) == email.strip().lower())
            return (await self._db.execute(stmt)).scalar_one_or_none()
        raise ValidationFailed("userId or email is required")

    async def _preference(self, user_id: UUID) -> EmailPreference | None:
        stmt = select(EmailPreference).where(EmailPreference.user_id == user_id)
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def get(self, *, user_id: UUID | None = None, email: str | None = None) -> PreferenceSnapshot:
        user = await self._find_user(user_id=user_id, email=email)
        if user is None:
            return PreferenceSnapshot()
        preference = await self._preference(user.id)
        if preference is None:
            return PreferenceSnapshot()
        return PreferenceSnapshot(
            marketing_emails=preference.marketing_emails,
            transactional_emails=preference.transactional_emails,
            unsubscribed_all=preference.unsubscribed_all,
        )

    async def update(
        self,
        *,
        user_id: UUID | None = None,
        email: str | None = None,
        marketing_emails: bool | None = None,
        transactional_emails: bool | None = None,
        unsubscribed_all: bool | None = None,
    ) -> PreferenceSnapshot:
        user = await self._find_user(user_id=user_id, email=email)
        if user is None:
            raise NotFoundError("User not found")
        preference = await self._preference(user.id)
        if preference is None:
            preference = EmailPreference(
                user_id=user.id,
                marketing_emails=True,
                transactional_emails=True,
                unsubscribed_all=False,
            )
            self._db.add(preference)
        if marketing_emails is not None:
            preference.marketing_emails = marketing_emails
        if transactional_emails is not None:
            preference.transactional_emails = transactional_emails
        if unsubscribed_all is not None:
            preference.unsubscribed_all = unsubscribed_all
        preference.updated_at = utcnow()
        await self._db.commit()
        logger.info("Email preferences updated", user_id=str(user.id), unsubscribed_all=preference.unsubscribed_all)
        return PreferenceSnapshot(
            marketing_emails=preference.marketing_emails,
            transactional_emails=preference.transactional_emails,
            unsubscribed_all=preference.unsubscribed_all,
        )
