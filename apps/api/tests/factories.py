"""Row builders shared by the API tests."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import cost_per_cert, current_period, months_for_denomination, utcnow
from grc_api.models import Grc, GrcStatusEnum, Member, Merchant, Survey, User, UserRoleEnum
from grc_api.services.auth import create_session_token


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(user.id, user.role)}"}


async def create_user(session: AsyncSession, email: str, role: UserRoleEnum = UserRoleEnum.MEMBER) -> User:
    user = User(email=email, role=role.value)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def create_member(
    session: AsyncSession,
    email: str = "jamie.rivera@grcmail.com",
    *,
    first_name: str = "Jamie",
    last_name: str = "Rivera",
) -> tuple[User, Member]:
    user = await create_user(session, email, UserRoleEnum.MEMBER)
    member = Member(
        user_id=user.id,
        first_name=first_name,
        last_name=last_name,
        address="12 Oak Lane",
        city="Austin",
        state="TX",
        zip="78701",
    )
    session.add(member)
    await session.commit()
    await session.refresh(member)
    return user, member


async def create_merchant(
    session: AsyncSession,
    email: str = "owner@cornerbakery.com",
    *,
    business_name: str = "Corner Bakery",
    slug: str | None = "corner-bakery-austin",
) -> tuple[User, Merchant]:
    user = await create_user(session, email, UserRoleEnum.MERCHANT)
    merchant = Merchant(user_id=user.id, business_name=business_name, slug=slug, city="Austin", state="TX")
    session.add(merchant)
    await session.commit()
    await session.refresh(merchant)
    return user, merchant


async def create_admin(session: AsyncSession, email: str = "ops@localcityplaces.com") -> User:
    return await create_user(session, email, UserRoleEnum.ADMIN)


async def create_grc(
    session: AsyncSession,
    merchant: Merchant,
    *,
    member: Member | None = None,
    recipient_email: str = "jamie.rivera@grcmail.com",
    denomination: int = 100,
    status: GrcStatusEnum = GrcStatusEnum.PENDING,
    grocery_store: str | None = None,
    issued_at=None,
) -> Grc:
    """Insert a certificate directly, bypassing inventory checks."""

    month, year = current_period()
    grc = Grc(
        merchant_id=merchant.id,
        member_id=member.id if member is not None else None,
        denomination=denomination,
        cost_per_cert=cost_per_cert(denomination),
        status=status,
        months_remaining=months_for_denomination(denomination),
        recipient_email=recipient_email,
        recipient_name="Jamie Rivera",
        grocery_store=grocery_store,
        start_month=month if status == GrcStatusEnum.ACTIVE else None,
        start_year=year if status == GrcStatusEnum.ACTIVE else None,
        issued_at=issued_at or utcnow(),
    )
    session.add(grc)
    await session.commit()
    await session.refresh(grc)
    return grc


async def create_active_grc(
    session: AsyncSession,
    merchant: Merchant,
    member: Member,
    *,
    denomination: int = 100,
    grocery_store: str = "Safeway",
) -> Grc:
    return await create_grc(
        session,
        merchant,
        member=member,
        denomination=denomination,
        status=GrcStatusEnum.ACTIVE,
        grocery_store=grocery_store,
    )


async def create_survey(session: AsyncSession, merchant: Merchant, *, required: bool = True) -> Survey:
    survey = Survey(
        merchant_id=merchant.id,
        title="How was your visit?",
        questions=[
            {"id": "q1", "text": "What did you buy?", "type": "text", "options": [], "required": required},
        ],
        is_active=True,
    )
    session.add(survey)
    await session.commit()
    await session.refresh(survey)
    return survey


def veryfi_document(
    *,
    vendor: str | None = "Safeway",
    total: float | None = 42.5,
    receipt_date: str | None = None,
    document_id: int = 9001,
) -> dict[str, Any]:
    return {
        "id": document_id,
        "vendor": {"name": vendor, "raw_name": vendor},
        "total": total,
        "subtotal": total,
        "tax": 0,
        "date": receipt_date or utcnow().strftime("%Y-%m-%d 10:15:00"),
        "currency_code": "USD",
        "line_items": [],
    }
