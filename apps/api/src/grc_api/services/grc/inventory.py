"""Merchant certificate inventory: orders, confirmed stock and trial grants."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import (
    TRIAL_DENOMINATIONS,
    TRIAL_GRC_QUANTITY,
    OrderLine,
    PricingError,
    cost_per_cert,
    utcnow,
    validate_order,
)
from grc_api.domain.grc.pricing import trial_cost_per_cert
from grc_api.models import (
    Grc,
    GrcPurchase,
    Merchant,
    MerchantBankAccount,
    PaymentMethodEnum,
    PaymentStatusEnum,
)
from grc_api.services.errors import ValidationFailed
from grc_api.services.notifications import NotificationService


@dataclass(slots=True)
class InventoryRow:
    denomination: int
    purchased: int
    issued: int

    @property
    def available(self) -> int:
        return self.purchased - self.issued

    @property
    def cost_per_cert(self) -> Decimal | None:
        try:
            return cost_per_cert(self.denomination)
        except PricingError:
            return None


@dataclass(slots=True)
class InventorySnapshot:
    rows: list[InventoryRow]

    @property
    def available_denominations(self) -> list[int]:
        return [row.denomination for row in self.rows if row.available > 0]

    def available_for(self, denomination: int) -> int:
        for row in self.rows:
            if row.denomination == denomination:
                return row.available
        return 0

    @property
    def total_available(self) -> int:
        return sum(max(row.available, 0) for row in self.rows)


@dataclass(slots=True)
class BankDetails:
    routing_number: str
    account_number: str
    account_holder_name: str
    account_type: str = "checking"
    bank_name: str | None = None


class InventoryService:
    """Computes stock from confirmed purchases minus issued certificates."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        notification_service: NotificationService | None = None,
    ) -> None:
        self._db = db_session
        self._notifications = notification_service

    async def get_inventory(self, merchant_id: UUID) -> InventorySnapshot:
        purchased_stmt = (
            select(GrcPurchase.denomination, func.sum(GrcPurchase.quantity))
            .where(
                GrcPurchase.merchant_id == merchant_id,
                GrcPurchase.payment_status == PaymentStatusEnum.CONFIRMED,
            )
            .group_by(GrcPurchase.denomination)
        )
        issued_stmt = (
            select(Grc.denomination, func.count(Grc.id))
            .where(Grc.merchant_id == merchant_id)
            .group_by(Grc.denomination)
        )
        purchased = {row[0]: int(row[1] or 0) for row in (await self._db.execute(purchased_stmt)).all()}
        issued = {row[0]: int(row[1] or 0) for row in (await self._db.execute(issued_stmt)).all()}

        rows = [
            InventoryRow(denomination=denomination, purchased=quantity, issued=issued.get(denomination, 0))
            for denomination, quantity in purchased.items()
        ]
        rows.sort(key=lambda row: row.denomination)
        return InventorySnapshot(rows=rows)

    async def list_orders(self, merchant_id: UUID) -> list[GrcPurchase]:
        stmt = (
            select(GrcPurchase)
            .where(GrcPurchase.merchant_id == merchant_id)
            .order_by(GrcPurchase.created_at.desc())
        )
        return list((await self._db.execute(stmt)).scalars().all())

    async def get_bank_account(self, merchant_id: UUID) -> MerchantBankAccount | None:
        stmt = select(MerchantBankAccount).where(MerchantBankAccount.merchant_id == merchant_id)
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def save_bank_account(self, merchant_id: UUID, details: BankDetails) -> MerchantBankAccount:
        account = await self.get_bank_account(merchant_id)
        if account is None:
            account = MerchantBankAccount(merchant_id=merchant_id)
            self._db.add(account)
        account.routing_number = details.routing_number
        account.account_number = details.account_number
        account.account_holder_name = details.account_holder_name
        account.account_type = details.account_type
        account.bank_name = details.bank_name
        await self._db.flush()
        logger.info("Saved merchant bank account", merchant_id=str(merchant_id))
        return account

    async def place_order(
        self,
        merchant: Merchant,
        lines: Sequence[OrderLine],
        *,
        payment_method: str,
        zelle_account_name: str | None = None,
        bank_details: BankDetails | None = None,
        save_bank_info: bool = False,
        use_saved_bank: bool = False,
        notes: str | None = None,
    ) -> list[GrcPurchase]:
        """Create one pending purchase per order line.

        Zelle orders need the paying account's name. Business check orders need
        either the saved bank account or fresh bank details, which are stored
        when ``save_bank_info`` is set.
        """

        try:
            validated = validate_order(lines, payment_method)
        except PricingError as exc:
            raise ValidationFailed(str(exc)) from exc

        method = PaymentMethodEnum(payment_method)
        if method == PaymentMethodEnum.ZELLE and not (zelle_account_name or "").strip():
            raise ValidationFailed("Zelle account name is required")
        if method == PaymentMethodEnum.BUSINESS_CHECK:
            saved = await self.get_bank_account(merchant.id)
            if use_saved_bank and saved is None:
                raise ValidationFailed("No saved bank account on file")
            if not use_saved_bank and bank_details is None:
                raise ValidationFailed("Bank account details are required for business check payments")
            if bank_details is not None and save_bank_info:
                await self.save_bank_account(merchant.id, bank_details)

        purchases: list[GrcPurchase] = []
        for line in validated:
            purchase = GrcPurchase(
                merchant_id=merchant.id,
                denomination=line.denomination,
                quantity=line.quantity,
                total_cost=line.total_cost,
                payment_method=method,
                payment_status=PaymentStatusEnum.PENDING,
                zelle_account_name=zelle_account_name.strip() if zelle_account_name else None,
                payment_notes=notes,
                created_at=utcnow(),
            )
            self._db.add(purchase)
            purchases.append(purchase)
        await self._db.commit()
        for purchase in purchases:
            await self._db.refresh(purchase)

        logger.info(
            "Certificate order placed",
            merchant_id=str(merchant.id),
            lines=len(purchases),
            quantity=sum(p.quantity for p in purchases),
            payment_method=method.value,
        )
        if self._notifications is not None:
            await self._notifications.send_order_received(merchant, purchases)
        return purchases

    async def grant_trial(
        self,
        merchant_id: UUID,
        *,
        denomination: int,
        confirmed_by: UUID | None = None,
        commit: bool = True,
    ) -> GrcPurchase:
        if denomination not in TRIAL_DENOMINATIONS:
            raise ValidationFailed(
                f"Trial denomination must be one of {', '.join(str(d) for d in TRIAL_DENOMINATIONS)}"
            )
        now = utcnow()
        unit_cost = trial_cost_per_cert(denomination)
        purchase = GrcPurchase(
            merchant_id=merchant_id,
            denomination=denomination,
            quantity=TRIAL_GRC_QUANTITY,
            total_cost=unit_cost * TRIAL_GRC_QUANTITY,
            payment_method=PaymentMethodEnum.BUSINESS_CHECK,
            payment_status=PaymentStatusEnum.CONFIRMED,
            is_trial=True,
            payment_notes="Trial certificates",
            payment_confirmed_at=now,
            payment_confirmed_by=confirmed_by,
            created_at=now,
        )
        self._db.add(purchase)
        if commit:
            await self._db.commit()
            await self._db.refresh(purchase)
        else:
            await self._db.flush()
        logger.info("Trial inventory granted", merchant_id=str(merchant_id), denomination=denomination)
        return purchase
