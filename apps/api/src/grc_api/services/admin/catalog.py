"""Admin management of categories and merchant accounts."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.models import Category, GrcPurchase, Merchant, PaymentStatusEnum, User
from grc_api.services.errors import NotFoundError, ValidationFailed
from grc_api.services.grc.inventory import InventoryService

_UNSET = object()


@dataclass(slots=True)
class MerchantSummary:
    merchant: Merchant
    email: str | None
    category_name: str | None
    total_purchased: int
    total_available: int


class CategoryService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def list_categories(self) -> list[Category]:
        stmt = select(Category).order_by(Category.name)
        return list((await self._db.execute(stmt)).scalars().all())

    async def list_with_counts(self) -> list[tuple[Category, int]]:
        stmt = (
            select(Category, func.count(Merchant.id))
            .outerjoin(Merchant, Merchant.category_id == Category.id)
            .group_by(Category.id)
            .order_by(Category.name)
        )
        return [(row[0], int(row[1] or 0)) for row in (await self._db.execute(stmt)).all()]

    async def create(self, name: str) -> Category:
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Category name is required")
        existing = select(Category.id).where(func.lower(Category.name) == name.lower())
        if (await self._db.execute(existing)).first() is not None:
            raise ValidationFailed("A category with this name already exists")

        category = Category(name=name)
        self._db.add(category)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raise ValidationFailed("A category with this name already exists") from exc
        await self._db.refresh(category)
        logger.info("Category created", category_id=str(category.id), name=name)
        return category

    async def update(self, category_id: UUID, name: str) -> Category:
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Category name is required")
        category = await self._db.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")
        clash = select(Category.id).where(func.lower(Category.name) == name.lower(), Category.id != category_id)
        if (await self._db.execute(clash)).first() is not None:
            raise ValidationFailed("A category with this name already exists")

        category.name = name
        await self._db.commit()
        await self._db.refresh(category)
        logger.info("Category renamed", category_id=str(category_id), name=name)
        return category

    async def delete(self, category_id: UUID) -> None:
        category = await self._db.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")
        in_use = await self._db.execute(
            select(func.count(Merchant.id)).where(Merchant.category_id == category_id)
        )
        if int(in_use.scalar_one() or 0) > 0:
            raise ValidationFailed("Cannot delete category that has merchants assigned to it")
        await self._db.delete(category)
        await self._db.commit()
        logger.info("Category deleted", category_id=str(category_id))


class MerchantAdminService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._inventory = InventoryService(db_session)

    async def list_merchants(self) -> list[MerchantSummary]:
        purchased = (
            select(GrcPurchase.merchant_id, func.sum(GrcPurchase.quantity).label("purchased"))
            .where(GrcPurchase.payment_status == PaymentStatusEnum.CONFIRMED)
            .group_by(GrcPurchase.merchant_id)
            .subquery()
        )
        stmt = (
            select(Merchant, User.email, Category.name, purchased.c.purchased)
            .join(User, User.id == Merchant.user_id)
            .outerjoin(Category, Category.id == Merchant.category_id)
            .outerjoin(purchased, purchased.c.merchant_id == Merchant.id)
            .order_by(Merchant.created_at.desc())
        )
        summaries: list[MerchantSummary] = []
        for merchant, email, category_name, total_purchased in (await self._db.execute(stmt)).all():
            inventory = await self._inventory.get_inventory(merchant.id)
            summaries.append(
                MerchantSummary(
                    merchant=merchant,
                    email=email,
                    category_name=category_name,
                    total_purchased=int(total_purchased or 0),
                    total_available=inventory.total_available,
                )
            )
        return summaries

    async def update(self, merchant_id: UUID, *, verified: bool | None = None, category_id=_UNSET) -> Merchant:
        merchant = await self._db.get(Merchant, merchant_id)
        if merchant is None:
            raise NotFoundError("Merchant not found")
        if verified is not None:
            merchant.verified = verified
        if category_id is not _UNSET:
            if category_id is not None and await self._db.get(Category, category_id) is None:
                raise ValidationFailed("Unknown category")
            merchant.category_id = category_id
        await self._db.commit()
        await self._db.refresh(merchant)
        logger.info("Merchant updated by admin", merchant_id=str(merchant.id), verified=merchant.verified)
        return merchant

    async def grant_trial(self, merchant_id: UUID, *, denomination: int, admin_id: UUID | None) -> GrcPurchase:
        if await self._db.get(Merchant, merchant_id) is None:
            raise NotFoundError("Merchant not found")
        return await self._inventory.grant_trial(merchant_id, denomination=denomination, confirmed_by=admin_id)
