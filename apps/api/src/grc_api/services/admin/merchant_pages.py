"""Admin-built public merchant listings that no merchant account owns."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping
from uuid import UUID

from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import calculate_completion, is_valid_vimeo_url, strip_phone_number
from grc_api.models import Category, Merchant
from grc_api.services.errors import NotFoundError, ValidationFailed
from grc_api.services.merchants.profile import unique_slug

PAGE_FIELDS = (
    "business_name",
    "street_address",
    "city",
    "state",
    "zip_code",
    "phone",
    "website",
    "category_id",
    "description",
    "vimeo_url",
    "google_place_id",
)


@dataclass(slots=True)
class MerchantPageRow:
    merchant: Merchant
    category_name: str | None
    completion_percentage: int


@dataclass(slots=True)
class MerchantPageList:
    pages: list[MerchantPageRow] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() or None
    return value


class MerchantPageService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def _validate(self, values: dict[str, Any], *, partial: bool) -> dict[str, Any]:
        unknown = set(values) - set(PAGE_FIELDS)
        if unknown:
            raise ValidationFailed(f"Unknown page fields: {', '.join(sorted(unknown))}")
        values = {key: _clean(value) for key, value in values.items()}

        if not partial or "business_name" in values:
            if not values.get("business_name"):
                raise ValidationFailed("Business name is required")
        if not partial or "city" in values:
            if not values.get("city"):
                raise ValidationFailed("City is required")
        if not partial or "state" in values:
            state = values.get("state") or ""
            if len(state) != 2:
                raise ValidationFailed("State must be a 2-letter code")
            values["state"] = state.upper()
        if not partial or "phone" in values:
            if not values.get("phone"):
                raise ValidationFailed("Phone number is required")
            phone = strip_phone_number(values["phone"])
            if len(phone) != 10:
                raise ValidationFailed("Phone number must be 10 digits")
            values["phone"] = phone
        if values.get("vimeo_url") and not is_valid_vimeo_url(values["vimeo_url"]):
            raise ValidationFailed("Invalid Vimeo URL. Use format: https://vimeo.com/123456789")
        if values.get("category_id") is not None and await self._db.get(Category, values["category_id"]) is None:
            raise ValidationFailed("Invalid category")
        return values

    async def _get_page(self, merchant_id: UUID) -> Merchant:
        merchant = await self._db.get(Merchant, merchant_id)
        if merchant is None:
            raise NotFoundError("Merchant not found")
        return merchant

    async def list_pages(
        self,
        *,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        category_id: UUID | None = None,
    ) -> MerchantPageList:
        page = max(1, page)
        limit = min(100, max(1, limit))
        stmt = select(Merchant, Category.name).outerjoin(Category, Category.id == Merchant.category_id).where(
            Merchant.is_public_page.is_(True)
        )
        if category_id is not None:
            stmt = stmt.where(Merchant.category_id == category_id)
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Merchant.business_name).like(pattern),
                    func.lower(Merchant.city).like(pattern),
                    Merchant.phone.like(f"%{search.strip()}%"),
                )
            )

        total = int((await self._db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one())
        stmt = stmt.order_by(Merchant.created_at.desc()).limit(limit).offset((page - 1) * limit)
        rows = [
            MerchantPageRow(
                merchant=merchant,
                category_name=category_name,
                completion_percentage=calculate_completion(merchant).percentage,
            )
            for merchant, category_name in (await self._db.execute(stmt)).all()
        ]
        return MerchantPageList(pages=rows, total=total, page=page, limit=limit)

    async def create(self, values: Mapping[str, Any]) -> Merchant:
        values = await self._validate(dict(values), partial=False)
        merchant = Merchant(**values, is_public_page=True, verified=False)
        merchant.slug = await unique_slug(self._db, merchant.business_name, merchant.city)
        self._db.add(merchant)
        await self._db.commit()
        await self._db.refresh(merchant)
        logger.info("Merchant page created", merchant_id=str(merchant.id), slug=merchant.slug)
        return merchant

    async def update(self, merchant_id: UUID, changes: Mapping[str, Any]) -> Merchant:
        merchant = await self._get_page(merchant_id)
        changes = await self._validate(dict(changes), partial=True)
        for key, value in changes.items():
            setattr(merchant, key, value)
        if {"business_name", "city"} & set(changes):
            merchant.slug = await unique_slug(self._db, merchant.business_name, merchant.city, exclude_id=merchant.id)
        await self._db.commit()
        await self._db.refresh(merchant)
        logger.info("Merchant page updated", merchant_id=str(merchant_id), fields=sorted(changes))
        return merchant

    async def delete(self, merchant_id: UUID) -> None:
        merchant = await self._get_page(merchant_id)
        if not merchant.is_public_page:
            raise ValidationFailed("Cannot delete merchant accounts. Only public pages can be deleted.")
        await self._db.delete(merchant)
        await self._db.commit()
        logger.info("Merchant page deleted", merchant_id=str(merchant_id))
