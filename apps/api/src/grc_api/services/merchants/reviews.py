from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import count_words, review_earns_bonus, utcnow
from grc_api.models import Grc, Member, Merchant, Review
from grc_api.services.errors import NotFoundError, ValidationFailed


class ReviewService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def create(self, member: Member, *, merchant_id: UUID, grc_id: UUID, content: str) -> Review:
        """Record a review; 50+ words adds a bonus month to the certificate."""

        content = (content or "").strip()
        if not content:
            raise ValidationFailed("Review content is required")

        grc = await self._db.get(Grc, grc_id)
        if grc is None or grc.member_id != member.id or grc.merchant_id != merchant_id:
            raise NotFoundError("GRC not found")

        existing = select(func.count(Review.id)).where(Review.member_id == member.id, Review.grc_id == grc_id)
        if int((await self._db.execute(existing)).scalar_one() or 0) > 0:
            raise ValidationFailed("You have already reviewed this business for this GRC")

        bonus = review_earns_bonus(content)
        review = Review(
            merchant_id=merchant_id,
            member_id=member.id,
            grc_id=grc_id,
            content=content,
            word_count=count_words(content),
            bonus_month_awarded=bonus,
            created_at=utcnow(),
        )
        self._db.add(review)
        if bonus:
            grc.months_remaining = grc.months_remaining + 1
        await self._db.commit()
        await self._db.refresh(review)
        logger.info("Review created", review_id=str(review.id), bonus_month=bonus, word_count=review.word_count)
        return review

    async def list_for_merchant(self, merchant_id: UUID, *, limit: int | None = None) -> list[tuple[Review, Member]]:
        stmt = (
            select(Review, Member)
            .join(Member, Member.id == Review.member_id)
            .where(Review.merchant_id == merchant_id)
            .order_by(Review.created_at.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return [(row[0], row[1]) for row in (await self._db.execute(stmt)).all()]

    async def list_all(self, *, limit: int = 50, offset: int = 0) -> list[tuple[Review, Member, Merchant]]:
        stmt = (
            select(Review, Member, Merchant)
            .join(Member, Member.id == Review.member_id)
            .join(Merchant, Merchant.id == Review.merchant_id)
            .order_by(Review.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return [(row[0], row[1], row[2]) for row in (await self._db.execute(stmt)).all()]

    async def delete(self, review_id: UUID) -> None:
        review = await self._db.get(Review, review_id)
        if review is None:
            raise NotFoundError("Review not found")
        await self._db.delete(review)
        await self._db.commit()
        logger.info("Review deleted", review_id=str(review_id))
