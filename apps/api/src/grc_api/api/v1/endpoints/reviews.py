"""Member reviews of merchants."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.api.dependencies.session import require_member
from grc_api.api.errors import raise_http
from grc_api.db.session import get_session
from grc_api.models import Member
from grc_api.schemas.grc import ReviewResponse, review_response
from grc_api.services.errors import GrcServiceError
from grc_api.services.merchants import ReviewService

router = APIRouter(tags=["Reviews"])


class ReviewCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    merchant_id: UUID = Field(..., alias="merchantId")
    grc_id: UUID = Field(..., alias="grcId")
    content: str = Field(..., min_length=1)


@router.post("/review/create", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    payload: ReviewCreateRequest,
    member: Member = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> ReviewResponse:
    try:
        review = await ReviewService(db).create(
            member,
            merchant_id=payload.merchant_id,
            grc_id=payload.grc_id,
            content=payload.content,
        )
    except GrcServiceError as exc:
        raise_http(exc)
    return review_response(review, member)


@router.get("/reviews", response_model=list[ReviewResponse])
async def list_reviews(
    merchant_id: UUID = Query(..., alias="merchantId"),
    limit: int | None = Query(None, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> list[ReviewResponse]:
    rows = await ReviewService(db).list_for_merchant(merchant_id, limit=limit)
    return [review_response(review, member) for review, member in rows]
