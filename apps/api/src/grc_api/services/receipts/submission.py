"""Member receipt uploads: validation, OCR, warnings and persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.core.settings import Settings, get_settings
from grc_api.domain.grc import (
    ReceiptImageError,
    ReceiptImageTooLarge,
    current_period,
    parse_receipt_image,
    store_names_match,
)
from grc_api.models import Grc, GrcStatusEnum, Member, Receipt, ReceiptStatusEnum
from grc_api.services.auth.rate_limit import RateLimiter
from grc_api.services.errors import (
    NotFoundError,
    PayloadTooLargeError,
    RateLimitedError,
    ValidationFailed,
)

from .storage import ReceiptImageStorage
from .veryfi import VeryfiClient, VeryfiError, VeryfiResult, to_service_error


@dataclass(slots=True)
class ReceiptUpload:
    grc_id: UUID
    image: str
    file_name: str | None = None
    acknowledge_warnings: bool = False


@dataclass(slots=True)
class ReceiptChecks:
    amount: Decimal | None
    receipt_date: date | None
    extracted_store_name: str | None
    store_mismatch: bool
    date_mismatch: bool
    warnings: list[str] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


@dataclass(slots=True)
class SubmissionOutcome:
    checks: ReceiptChecks
    receipt: Receipt | None = None

    @property
    def requires_confirmation(self) -> bool:
        return self.receipt is None


def evaluate_receipt(result: VeryfiResult, registered_store: str | None, *, today: tuple[int, int]) -> ReceiptChecks:
    """Compare OCR output with the certificate's store and the current month."""

    vendor = result.vendor_name
    store_mismatch = not store_names_match(registered_store, vendor)
    date_mismatch = False
    if result.receipt_date is not None:
        date_mismatch = (result.receipt_date.month, result.receipt_date.year) != today

    warnings: list[str] = []
    if store_mismatch and not vendor:
        warnings.append(f"We couldn't read the store name. Make sure this receipt is from {registered_store}.")
    elif store_mismatch:
        warnings.append(f'Store "{vendor}" doesn\'t match your registered store "{registered_store}"')
    if date_mismatch and result.receipt_date is not None:
        label = result.receipt_date.strftime("%B %Y")
        warnings.append(
            f"Receipt date ({label}) is not in the current month. Receipts should be from the current month."
        )
    if result.total is None:
        warnings.append("We couldn't read a total from this receipt. An admin will confirm the amount.")

    return ReceiptChecks(
        amount=result.total,
        receipt_date=result.receipt_date,
        extracted_store_name=vendor,
        store_mismatch=store_mismatch,
        date_mismatch=date_mismatch,
        warnings=warnings,
    )


class ReceiptSubmissionService:
    def __init__(
        self,
        db_session: AsyncSession,
        *,
        veryfi_client: VeryfiClient | None = None,
        storage: ReceiptImageStorage | None = None,
        rate_limiter: RateLimiter | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._db = db_session
        self._settings = settings or get_settings()
        self._veryfi = veryfi_client or VeryfiClient(settings=self._settings)
        self._storage = storage if storage is not None else ReceiptImageStorage(settings=self._settings)
        self._rate_limiter = rate_limiter

    async def _check_rate_limit(self, member: Member) -> None:
        if self._rate_limiter is None:
            return
        state = await self._rate_limiter.hit(
            "receipt-upload",
            str(member.id),
            limit=self._settings.receipt_upload_rate_limit,
            window_seconds=self._settings.receipt_upload_rate_window_seconds,
        )
        if not state.allowed:
            raise RateLimitedError(
                "Too many uploads. Please wait a moment.",
                retry_after_seconds=state.retry_after_seconds or self._settings.receipt_upload_rate_window_seconds,
            )

    async def submit(self, member: Member, upload: ReceiptUpload) -> SubmissionOutcome:
        await self._check_rate_limit(member)

        try:
            image = parse_receipt_image(upload.image, max_bytes=self._settings.receipt_upload_max_bytes)
        except ReceiptImageTooLarge as exc:
            raise PayloadTooLargeError(str(exc)) from exc
        except ReceiptImageError as exc:
            raise ValidationFailed(str(exc)) from exc

        grc = await self._db.get(Grc, upload.grc_id)
        if grc is None or grc.member_id != member.id:
            raise NotFoundError("GRC not found or doesn't belong to you")
        if grc.status != GrcStatusEnum.ACTIVE:
            raise ValidationFailed("GRC is not active")

        file_name = upload.file_name or f"receipt.{image.extension}"
        try:
            result = await self._veryfi.process_document(image.base64_data, file_name=file_name)
        except VeryfiError as exc:
            raise to_service_error(exc) from exc

        checks = evaluate_receipt(result, grc.grocery_store, today=current_period())
        if checks.has_warnings and not upload.acknowledge_warnings:
            logger.info(
                "Receipt needs member confirmation",
                member_id=str(member.id),
                grc_id=str(grc.id),
                warnings=len(checks.warnings),
            )
            return SubmissionOutcome(checks=checks)

        stored = await self._storage.store(member.id, image, file_name=upload.file_name)
        receipt = Receipt(
            member_id=member.id,
            grc_id=grc.id,
            image_url=(stored.public_url or stored.storage_key) if stored else None,
            image_hash=image.sha256,
            amount=checks.amount,
            receipt_date=checks.receipt_date,
            extracted_store_name=checks.extracted_store_name,
            store_mismatch=checks.store_mismatch,
            date_mismatch=checks.date_mismatch,
            member_override=checks.has_warnings,
            veryfi_document_id=str(result.document_id) if result.document_id is not None else None,
            veryfi_response=result.raw,
            status=ReceiptStatusEnum.PENDING,
        )
        self._db.add(receipt)
        await self._db.commit()
        await self._db.refresh(receipt)
        logger.info(
            "Receipt submitted",
            receipt_id=str(receipt.id),
            member_id=str(member.id),
            grc_id=str(grc.id),
            amount=str(checks.amount) if checks.amount is not None else None,
            member_override=receipt.member_override,
        )
        return SubmissionOutcome(checks=checks, receipt=receipt)

    async def list_for_member(self, member: Member, *, status: ReceiptStatusEnum | None = None) -> list[Receipt]:
        stmt = select(Receipt).where(Receipt.member_id == member.id)
        if status is not None:
            stmt = stmt.where(Receipt.status == status)
        stmt = stmt.order_by(Receipt.submitted_at.desc())
        return list((await self._db.execute(stmt)).scalars().all())
