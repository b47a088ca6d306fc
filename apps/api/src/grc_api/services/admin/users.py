"""Admin account management across members, merchants and admins."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping
from uuid import UUID

from loguru import logger
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.models import GrcPurchase, Member, Merchant, User, UserRoleEnum
from grc_api.services.auth import normalize_email
from grc_api.services.errors import ConflictError, NotFoundError, ValidationFailed

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 10

_USER_FIELDS = ("email", "phone", "role")
_MEMBER_FIELDS = ("first_name", "last_name", "address", "city", "state", "zip", "home_city")
_MERCHANT_FIELDS = ("business_name", "city", "phone", "website", "description", "verified")


@dataclass(slots=True)
class UserRow:
    user: User
    member: Member | None
    merchant: Merchant | None

    @property
    def display_name(self) -> str | None:
        if self.member is not None and self.member.first_name and self.member.last_name:
            return self.member.display_name
        if self.merchant is not None:
            return self.merchant.business_name
        return None


@dataclass(slots=True)
class UserStats:
    total: int
    admins: int
    merchants: int
    members: int


@dataclass(slots=True)
class UserDetail:
    user: User
    member: Member | None
    merchant: Merchant | None
    has_trial_grcs: bool = False


@dataclass(slots=True)
class UserList:
    users: list[UserRow] = field(default_factory=list)
    stats: UserStats | None = None


def _matches(term: str):
    pattern = f"%{term.lower()}%"
    return or_(
        func.lower(User.email).like(pattern),
        func.lower(Member.first_name).like(pattern),
        func.lower(Member.last_name).like(pattern),
        func.lower(Merchant.business_name).like(pattern),
    )


class UserAdminService:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    def _joined(self):
        return (
            select(User, Member, Merchant)
            .outerjoin(Member, Member.user_id == User.id)
            .outerjoin(Merchant, Merchant.user_id == User.id)
        )

    async def list_users(self, *, role: str | None = None, search: str | None = None) -> UserList:
        stmt = self._joined()
        if role and role != "all":
            if role not in {item.value for item in UserRoleEnum}:
                raise ValidationFailed("Invalid role")
            stmt = stmt.where(User.role == role)
        if search and search.strip():
            stmt = stmt.where(_matches(search.strip()))
        stmt = stmt.order_by(User.created_at)
        rows = [UserRow(user=row[0], member=row[1], merchant=row[2]) for row in (await self._db.execute(stmt)).all()]

        counts_stmt = select(User.role, func.count(User.id)).group_by(User.role)
        counts = {role_value: int(count) for role_value, count in (await self._db.execute(counts_stmt)).all()}
        stats = UserStats(
            total=len(rows),
            admins=counts.get(UserRoleEnum.ADMIN.value, 0),
            merchants=counts.get(UserRoleEnum.MERCHANT.value, 0),
            members=counts.get(UserRoleEnum.MEMBER.value, 0),
        )
        return UserList(users=rows, stats=stats)

    async def search(self, query: str | None) -> list[UserRow]:
        term = (query or "").strip()
        if len(term) < SEARCH_MIN_LENGTH:
            return []
        stmt = self._joined().where(_matches(term)).limit(SEARCH_LIMIT)
        return [UserRow(user=row[0], member=row[1], merchant=row[2]) for row in (await self._db.execute(stmt)).all()]

    async def get(self, user_id: UUID) -> UserDetail:
        row = (await self._db.execute(self._joined().where(User.id == user_id))).first()
        if row is None:
            raise NotFoundError("User not found")
        user, member, merchant = row[0], row[1], row[2]
        has_trial = False
        if merchant is not None:
            trial_stmt = select(GrcPurchase.id).where(
                GrcPurchase.merchant_id == merchant.id,
                GrcPurchase.is_trial.is_(True),
            )
            has_trial = (await self._db.execute(trial_stmt.limit(1))).first() is not None
        return UserDetail(user=user, member=member, merchant=merchant, has_trial_grcs=has_trial)

    async def update(
        self,
        user_id: UUID,
        *,
        acting_admin_id: UUID,
        user_changes: Mapping[str, Any] | None = None,
        member_changes: Mapping[str, Any] | None = None,
        merchant_changes: Mapping[str, Any] | None = None,
    ) -> UserDetail:
        detail = await self.get(user_id)
        user_changes = {key: value for key, value in (user_changes or {}).items() if key in _USER_FIELDS}

        role = user_changes.get("role")
        if role is not None:
            if role not in {item.value for item in UserRoleEnum}:
                raise ValidationFailed("Invalid role")
            if user_id == acting_admin_id and role != UserRoleEnum.ADMIN.value:
                raise ValidationFailed("Cannot change your own role")

        email = user_changes.get("email")
        if email:
            email = normalize_email(email)
            taken = select(User.id).where(func.lower(User.email) == email, User.id != user_id)
            if (await self._db.execute(taken)).first() is not None:
                raise ConflictError("Email is already used by another account")
            user_changes["email"] = email
        elif "email" in user_changes:
            user_changes.pop("email")

        for key, value in user_changes.items():
            setattr(detail.user, key, value)

        if detail.member is not None:
            for key, value in (member_changes or {}).items():
                if key in _MEMBER_FIELDS and (value is not None or key not in ("first_name", "last_name")):
                    setattr(detail.member, key, value)
        if detail.merchant is not None:
            for key, value in (merchant_changes or {}).items():
                if key in _MERCHANT_FIELDS and (value is not None or key != "business_name"):
                    setattr(detail.merchant, key, value)

        await self._db.commit()
        logger.info(
            "User updated by admin",
            user_id=str(user_id),
            admin_id=str(acting_admin_id),
            fields=sorted(user_changes),
        )
        return await self.get(user_id)

    async def delete(self, user_id: UUID, *, acting_admin_id: UUID) -> None:
        if user_id == acting_admin_id:
            raise ValidationFailed("Cannot delete your own account")
        result = await self._db.execute(delete(User).where(User.id == user_id))
        if not result.rowcount:
            raise NotFoundError("User not found")
        await self._db.commit()
        logger.info("User deleted by admin", user_id=str(user_id), admin_id=str(acting_admin_id))
