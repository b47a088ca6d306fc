"""Merchant profile editing, completion scoring and public listings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import CompletionResult, calculate_completion, slugify
from grc_api.models import Category, Merchant, Review, User
from grc_api.services.errors import NotFoundError, ValidationFailed

EDITABLE_FIELDS = (
    "business_name",
    "category_id",
    "street_address",
    "city",
    "state",
    "zip_code",
    "phone",
    "website",
    "description",
    "about_story",
    "logo_url",
    "vimeo_url",
    "instagram_url",
    "facebook_url",
    "tiktok_url",
    "hours",
    "photos",
    "services",
    "google_place_id",
)


@dataclass(slots=True)
class MerchantProfileView:
    merchant: Merchant
    email: str | None
    category_name: str | None
    completion: CompletionResult


@dataclass(slots=True)
class PublicMerchantView:
    merchant: Merchant
    category_name: str | None
    review_count: int


async def unique_slug(db: AsyncSession, *parts: str | None, exclude_id: UUID | None = None) -> str:
    """Slugify ``parts`` and append ``-2``, ``-3``... until no other merchant holds it."""

    base = slugify(*parts)
    candidate = base
    suffix = 2
    while True:
        stmt = select(Merchant.id).where(Merchant.slug == candidate)
        if exclude_id is not None:
            stmt = stmt.where(Merchant.id != exclude_id)
        if (await db.execute(stmt)).first() is None:
            return candidate
        candidate = f"{base}-{suffix}"
        suffix += 1


class MerchantProfileService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get_for_user(self, user_id: UUID) -> Merchant | None:
        stmt = select(Merchant).where(Merchant.user_id == user_id)
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def view(self, merchant: Merchant) -> MerchantProfileView:
        category_name = None
        if merchant.category_id is not None:
            category = await self._db.get(Category, merchant.category_id)
            category_name = category.name if category else None
        user = await self._db.get(User, merchant.user_id) if merchant.user_id is not None else None
        return MerchantProfileView(
            merchant=merchant,
            email=user.email if user else None,
            category_name=category_name,
            completion=calculate_completion(merchant),
        )

    async def update(self, merchant: Merchant, changes: Mapping[str, Any]) -> MerchantProfileView:
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationFailed(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        if "business_name" in changes and not (changes["business_name"] or "").strip():
            raise ValidationFailed("businessName cannot be empty")
        if changes.get("category_id") is not None and await self._db.get(Category, changes["category_id"]) is None:
            raise ValidationFailed("Unknown category")
        if changes.get("state") and len(changes["state"]) != 2:
            raise ValidationFailed("state must be a 2-letter code")

        for key, value in changes.items():
            setattr(merchant, key, value.strip() if isinstance(value, str) else value)

        if not merchant.slug or {"business_name", "city"} & set(changes):
            merchant.slug = await unique_slug(self._db, merchant.business_name, merchant.city, exclude_id=merchant.id)

        await self._db.commit()
        await self._db.refresh(merchant)
        view = await self.view(merchant)
        logger.info(
            "Merchant profile updated",
            merchant_id=str(merchant.id),
            fields=sorted(changes),
            completion=view.completion.percentage,
        )
        return view

    async def get_public(self, slug: str) -> PublicMerchantView:
        stmt = (
            select(Merchant, Category.name)
            .outerjoin(Category, Category.id == Merchant.category_id)
            .where(Merchant.slug == slug)
        )
        row = (await self._db.execute(stmt)).first()
        if row is None:
            raise NotFoundError("Merchant not found")
        merchant, category_name = row[0], row[1]
        count_stmt = select(func.count(Review.id)).where(Review.merchant_id == merchant.id)
        review_count = int((await self._db.execute(count_stmt)).scalar_one() or 0)
        return PublicMerchantView(merchant=merchant, category_name=category_name, review_count=review_count)

    async def list_public(
        self,
        *,
        category_id: UUID | None = None,
        city: str | None = None,
    ) -> list[tuple[Merchant, str | None]]:
        stmt = (
            select(Merchant, Category.name)
            .outerjoin(Category, Category.id == Merchant.category_id)
            .where(Merchant.verified.is_(True))
        )
        if category_id is not None:
            stmt = stmt.where(Merchant.category_id == category_id)
        if city:
            stmt = stmt.where(func.lower(Merchant.city) == city.strip().lower())
        stmt = stmt.order_by(Merchant.business_name)
        return [(row[0], row[1]) for row in (await self._db.execute(stmt)).all()]
