"""Unauthenticated directory data: categories and merchant pages."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.api.errors import raise_http
from grc_api.db.session import get_session
from grc_api.schemas.merchant import (
    CategoryResponse,
    MerchantProfileEnvelope,
    MerchantProfileResponse,
)
from grc_api.services.admin import CategoryService
from grc_api.services.errors import GrcServiceError
from grc_api.services.merchants import MerchantProfileService

router = APIRouter(tags=["Public"])


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(db: AsyncSession = Depends(get_session)) -> list[CategoryResponse]:
    categories = await CategoryService(db).list_categories()
    return [CategoryResponse.model_validate(category) for category in categories]


@router.get("/merchants/public", response_model=list[MerchantProfileEnvelope])
async def list_public_merchants(
    category_id: UUID | None = Query(None, alias="categoryId"),
    city: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> list[MerchantProfileEnvelope]:
    rows = await MerchantProfileService(db).list_public(category_id=category_id, city=city)
    return [
        MerchantProfileEnvelope(profile=MerchantProfileResponse.model_validate(merchant), category_name=category_name)
        for merchant, category_name in rows
    ]


@router.get("/merchants/public/{slug}", response_model=MerchantProfileEnvelope)
async def get_public_merchant(slug: str, db: AsyncSession = Depends(get_session)) -> MerchantProfileEnvelope:
    try:
        view = await MerchantProfileService(db).get_public(slug)
    except GrcServiceError as exc:
        raise_http(exc)
    return MerchantProfileEnvelope(
        profile=MerchantProfileResponse.model_validate(view.merchant),
        category_name=view.category_name,
        review_count=view.review_count,
    )
