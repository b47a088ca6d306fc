"""Member onboarding, certificate registration and the pending-certificate queue."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import count_words, ensure_aware, review_earns_bonus, utcnow
from grc_api.models import (
    Grc,
    GrcStatusEnum,
    Member,
    MemberGrcQueue,
    Merchant,
    MonthlyQualification,
    QualificationStatusEnum,
    Review,
    Survey,
    SurveyResponse,
    User,
)
from grc_api.services.errors import NotFoundError, ValidationFailed
from grc_api.services.notifications import NotificationService

ZIP_PATTERN = re.compile(r"^\d{5}(-\d{4})?$")


@dataclass(slots=True)
class MemberProfileInput:
    first_name: str
    last_name: str
    phone: str
    address: str
    city: str
    state: str
    zip: str


@dataclass(slots=True)
class GrcRegistrationInput:
    grc_id: UUID
    grocery_store: str
    start_month: int
    start_year: int
    grocery_store_place_id: str | None = None
    survey_answers: Mapping[str, Any] | None = None
    review_content: str | None = None


@dataclass(slots=True)
class RegistrationOutcome:
    grc: Grc
    qualification: MonthlyQualification
    bonus_month: bool
    review: Review | None = None
    survey_response: SurveyResponse | None = None


@dataclass(slots=True)
class MemberGrcListing:
    pending: list[Grc] = field(default_factory=list)
    active: list[Grc] = field(default_factory=list)
    completed: list[Grc] = field(default_factory=list)

    @property
    def has_active_grc(self) -> bool:
        return bool(self.active)


def _issued_sort_key(grc: Grc) -> datetime:
    moment = grc.issued_at or grc.created_at
    return ensure_aware(moment) if moment is not None else datetime.min.replace(tzinfo=timezone.utc)


def validate_member_profile(profile: MemberProfileInput) -> None:
    required = {
        "firstName": profile.first_name,
        "lastName": profile.last_name,
        "phone": profile.phone,
        "address": profile.address,
        "city": profile.city,
    }
    for label, value in required.items():
        if not (value or "").strip():
            raise ValidationFailed(f"{label} is required")
    if not 2 <= len((profile.state or "").strip()) <= 50:
        raise ValidationFailed("state must be between 2 and 50 characters")
    if not ZIP_PATTERN.match((profile.zip or "").strip()):
        raise ValidationFailed("zip must be a 5-digit or ZIP+4 code")


class GrcRegistrationService:
    def __init__(
        self,
        db_session: AsyncSession,
        *,
        notification_service: NotificationService | None = None,
    ) -> None:
        self._db = db_session
        self._notifications = notification_service

    async def get_member(self, user_id: UUID) -> Member | None:
        stmt = select(Member).where(Member.user_id == user_id)
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def register_member(self, user: User, profile: MemberProfileInput) -> Member:
        validate_member_profile(profile)
        if await self.get_member(user.id) is not None:
            raise ValidationFailed("Member profile already exists")

        member = Member(
            user_id=user.id,
            first_name=profile.first_name.strip(),
            last_name=profile.last_name.strip(),
            phone=profile.phone.strip(),
            address=profile.address.strip(),
            city=profile.city.strip(),
            state=profile.state.strip(),
            zip=profile.zip.strip(),
            home_city=profile.city.strip(),
        )
        self._db.add(member)
        if not user.phone:
            user.phone = member.phone
        await self._db.commit()
        await self._db.refresh(member)
        logger.info("Member registered", member_id=str(member.id), user_id=str(user.id))
        return member

    async def update_member(self, member: Member, changes: Mapping[str, Any]) -> Member:
        merged = MemberProfileInput(
            first_name=changes.get("first_name", member.first_name),
            last_name=changes.get("last_name", member.last_name),
            phone=changes.get("phone", member.phone or ""),
            address=changes.get("address", member.address or ""),
            city=changes.get("city", member.city or ""),
            state=changes.get("state", member.state or ""),
            zip=changes.get("zip", member.zip or ""),
        )
        validate_member_profile(merged)
        for key in ("first_name", "last_name", "phone", "address", "city", "state", "zip"):
            setattr(member, key, getattr(merged, key).strip())
        await self._db.commit()
        await self._db.refresh(member)
        return member

    async def get_active_grc(self, member_id: UUID) -> Grc | None:
        stmt = select(Grc).where(Grc.member_id == member_id, Grc.status == GrcStatusEnum.ACTIVE).limit(1)
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _active_survey(self, merchant_id: UUID) -> Survey | None:
        stmt = (
            select(Survey)
            .where(Survey.merchant_id == merchant_id, Survey.is_active.is_(True))
            .order_by(Survey.created_at.desc())
            .limit(1)
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def register_grc(self, member: Member, request: GrcRegistrationInput) -> RegistrationOutcome:
        """Activate a pending certificate for the member.

        The certificate update, registration survey response, optional review
        and first month's qualification are written in one transaction.
        """

        if not 1 <= request.start_month <= 12:
            raise ValidationFailed("startMonth must be between 1 and 12")
        if not 2024 <= request.start_year <= 2030:
            raise ValidationFailed("startYear must be between 2024 and 2030")
        if not request.grocery_store.strip():
            raise ValidationFailed("groceryStore is required")

        if await self.get_active_grc(member.id) is not None:
            raise ValidationFailed("You already have an active GRC. Complete it before activating another.")

        grc = await self._db.get(Grc, request.grc_id)
        if grc is None:
            raise NotFoundError("GRC not found")
        if grc.member_id is not None and grc.member_id != member.id:
            raise NotFoundError("GRC not found")
        if grc.status != GrcStatusEnum.PENDING:
            raise ValidationFailed("This GRC is not available for registration")

        merchant = await self._db.get(Merchant, grc.merchant_id)
        if merchant is None:
            raise NotFoundError("Merchant not found")

        bonus_month = review_earns_bonus(request.review_content)
        now = utcnow()

        grc.member_id = member.id
        grc.grocery_store = request.grocery_store.strip()
        grc.grocery_store_place_id = request.grocery_store_place_id
        grc.status = GrcStatusEnum.ACTIVE
        grc.start_month = request.start_month
        grc.start_year = request.start_year
        grc.months_remaining = grc.months_remaining + (1 if bonus_month else 0)
        grc.registered_at = now

        survey_response: SurveyResponse | None = None
        survey = await self._active_survey(merchant.id)
        if survey is not None and request.survey_answers:
            survey_response = SurveyResponse(
                survey_id=survey.id,
                member_id=member.id,
                grc_id=grc.id,
                month=None,
                year=None,
                answers=dict(request.survey_answers),
                completed_at=now,
            )
            self._db.add(survey_response)

        review: Review | None = None
        if request.review_content and request.review_content.strip():
            review = Review(
                merchant_id=merchant.id,
                member_id=member.id,
                grc_id=grc.id,
                content=request.review_content.strip(),
                word_count=count_words(request.review_content),
                bonus_month_awarded=bonus_month,
                created_at=now,
            )
            self._db.add(review)

        qualification = MonthlyQualification(
            member_id=member.id,
            grc_id=grc.id,
            month=request.start_month,
            year=request.start_year,
            status=QualificationStatusEnum.IN_PROGRESS,
        )
        self._db.add(qualification)

        await self._db.execute(
            delete(MemberGrcQueue).where(
                MemberGrcQueue.member_id == member.id,
                MemberGrcQueue.grc_id == grc.id,
            )
        )
        await self._db.commit()
        await self._db.refresh(grc)
        await self._db.refresh(qualification)

        logger.info(
            "GRC registered",
            grc_id=str(grc.id),
            member_id=str(member.id),
            bonus_month=bonus_month,
            start_month=request.start_month,
            start_year=request.start_year,
        )
        if self._notifications is not None:
            await self._notifications.send_grc_activated(grc, member, merchant, bonus_month=bonus_month)

        return RegistrationOutcome(
            grc=grc,
            qualification=qualification,
            bonus_month=bonus_month,
            review=review,
            survey_response=survey_response,
        )

    def _visible_to(self, member: Member, user: User):
        return or_(
            Grc.member_id == member.id,
            and_(Grc.member_id.is_(None), func.lower(Grc.recipient_email) == user.email.lower()),
        )

    async def list_member_grcs(self, member: Member, user: User) -> MemberGrcListing:
        """Group the member's certificates; pending ones follow the member's queue order."""

        stmt = select(Grc).where(self._visible_to(member, user))
        grcs = list((await self._db.execute(stmt)).scalars().all())

        queue_stmt = select(MemberGrcQueue.grc_id, MemberGrcQueue.sort_order).where(
            MemberGrcQueue.member_id == member.id
        )
        order = {row[0]: row[1] for row in (await self._db.execute(queue_stmt)).all()}

        listing = MemberGrcListing()
        for grc in grcs:
            if grc.status == GrcStatusEnum.PENDING:
                listing.pending.append(grc)
            elif grc.status == GrcStatusEnum.ACTIVE and grc.member_id == member.id:
                listing.active.append(grc)
            elif grc.status == GrcStatusEnum.COMPLETED and grc.member_id == member.id:
                listing.completed.append(grc)

        queued = sorted((g for g in listing.pending if g.id in order), key=lambda g: order[g.id])
        unqueued = sorted(
            (g for g in listing.pending if g.id not in order),
            key=_issued_sort_key,
            reverse=True,
        )
        listing.pending = queued + unqueued
        return listing

    async def reorder_queue(self, member: Member, user: User, grc_ids: Sequence[UUID]) -> list[MemberGrcQueue]:
        if len(set(grc_ids)) != len(grc_ids):
            raise ValidationFailed("grcIds must not contain duplicates")

        stmt = select(Grc.id).where(
            self._visible_to(member, user),
            Grc.status == GrcStatusEnum.PENDING,
            Grc.id.in_(list(grc_ids)),
        )
        allowed = set((await self._db.execute(stmt)).scalars().all())
        unknown = [str(grc_id) for grc_id in grc_ids if grc_id not in allowed]
        if unknown:
            raise ValidationFailed(f"Unknown or unavailable GRCs: {', '.join(unknown)}")

        await self._db.execute(delete(MemberGrcQueue).where(MemberGrcQueue.member_id == member.id))
        entries = [
            MemberGrcQueue(member_id=member.id, grc_id=grc_id, sort_order=index)
            for index, grc_id in enumerate(grc_ids)
        ]
        self._db.add_all(entries)
        await self._db.commit()
        logger.info("Member GRC queue reordered", member_id=str(member.id), size=len(entries))
        return entries
