"""Member registration, certificates, dashboard and receipt uploads."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.api.dependencies.services import (
    get_notification_service,
    get_rate_limiter,
    get_receipt_storage,
    get_veryfi_client,
)
from grc_api.api.dependencies.session import require_member, require_member_user
from grc_api.api.errors import raise_http
from grc_api.db.session import get_session
from grc_api.models import Member, QualificationStatusEnum, ReceiptStatusEnum, User
from grc_api.schemas.grc import GrcResponse, QualificationResponse, ReceiptResponse
from grc_api.services.auth import RateLimiter
from grc_api.services.errors import GrcServiceError
from grc_api.services.grc import (
    GrcRegistrationInput,
    GrcRegistrationService,
    MemberDashboardService,
    MemberProfileInput,
)
from grc_api.services.notifications import NotificationService
from grc_api.services.receipts import (
    ReceiptImageStorage,
    ReceiptSubmissionService,
    ReceiptUpload,
    VeryfiClient,
)

router = APIRouter(prefix="/member", tags=["Member"])


class MemberProfileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    phone: str
    address: str
    city: str
    state: str
    zip: str


class MemberProfileUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    first_name: str | None = Field(None, alias="firstName")
    last_name: str | None = Field(None, alias="lastName")
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None


class MemberResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    home_city: str | None = Field(None, alias="homeCity")


class RegisterGrcRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    grc_id: UUID = Field(..., alias="grcId")
    grocery_store: str = Field(..., alias="groceryStore", min_length=1)
    grocery_store_place_id: str | None = Field(None, alias="groceryStorePlaceId")
    survey_answers: dict[str, Any] | None = Field(None, alias="surveyAnswers")
    review_content: str | None = Field(None, alias="reviewContent")
    start_month: int = Field(..., alias="startMonth", ge=1, le=12)
    start_year: int = Field(..., alias="startYear", ge=2024, le=2030)


class RegisterGrcResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    grc: GrcResponse
    bonus_month: bool = Field(..., alias="bonusMonth")
    qualification: QualificationResponse


class MemberGrcsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pending: list[GrcResponse]
    active: list[GrcResponse]
    completed: list[GrcResponse]
    has_active_grc: bool = Field(..., alias="hasActiveGrc")


class QueueOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    grc_ids: list[UUID] = Field(..., alias="grcIds")


class CurrentMonth(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    month: int
    year: int
    status: QualificationStatusEnum
    survey_completed: bool = Field(..., alias="surveyCompleted")


class ActiveGrcSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    grc: GrcResponse
    merchant_name: str | None = Field(None, alias="merchantName")
    merchant_slug: str | None = Field(None, alias="merchantSlug")


class MemberDashboardResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    this_month_receipts: float = Field(..., alias="thisMonthReceipts")
    amount_remaining: float = Field(..., alias="amountRemaining")
    total_earned: float = Field(..., alias="totalEarned")
    months_qualified: int = Field(..., alias="monthsQualified")
    pending_receipts: int = Field(..., alias="pendingReceipts")
    current_month: CurrentMonth | None = Field(None, alias="currentMonth")
    active_grc: ActiveGrcSummary | None = Field(None, alias="activeGrc")
    has_survey: bool = Field(..., alias="hasSurvey")
    survey_id: UUID | None = Field(None, alias="surveyId")


class ReceiptUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    image: str = Field(..., min_length=1)
    grc_id: UUID = Field(..., alias="grcId")
    file_name: str | None = Field(None, alias="fileName")
    acknowledge_warnings: bool = Field(False, alias="acknowledgeWarnings")


class ExtractedReceipt(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: float | None = None
    receipt_date: str | None = Field(None, alias="receiptDate")
    store_name: str | None = Field(None, alias="storeName")
    store_mismatch: bool = Field(..., alias="storeMismatch")
    date_mismatch: bool = Field(..., alias="dateMismatch")


class ReceiptUploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    requires_confirmation: bool = Field(..., alias="requiresConfirmation")
    warnings: list[str] = Field(default_factory=list)
    extracted: ExtractedReceipt
    receipt: ReceiptResponse | None = None


@router.post("/register", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def register_member(
    payload: MemberProfileRequest,
    user: User = Depends(require_member_user),
    db: AsyncSession = Depends(get_session),
) -> MemberResponse:
    profile = MemberProfileInput(**payload.model_dump())
    try:
        member = await GrcRegistrationService(db).register_member(user, profile)
    except GrcServiceError as exc:
        raise_http(exc)
    return MemberResponse.model_validate(member)


@router.get("/profile", response_model=MemberResponse)
async def get_profile(member: Member = Depends(require_member)) -> MemberResponse:
    return MemberResponse.model_validate(member)


@router.put("/profile", response_model=MemberResponse)
async def update_profile(
    payload: MemberProfileUpdate,
    member: Member = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> MemberResponse:
    try:
        updated = await GrcRegistrationService(db).update_member(member, payload.model_dump(exclude_none=True))
    except GrcServiceError as exc:
        raise_http(exc)
    return MemberResponse.model_validate(updated)


@router.post("/register-grc", response_model=RegisterGrcResponse)
async def register_grc(
    payload: RegisterGrcRequest,
    member: Member = Depends(require_member),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> RegisterGrcResponse:
    service = GrcRegistrationService(db, notification_service=notifications)
    try:
        outcome = await service.register_grc(member, GrcRegistrationInput(**payload.model_dump()))
    except GrcServiceError as exc:
        raise_http(exc)
    return RegisterGrcResponse(
        grc=GrcResponse.model_validate(outcome.grc),
        bonus_month=outcome.bonus_month,
        qualification=QualificationResponse.model_validate(outcome.qualification),
    )


@router.get("/grcs", response_model=MemberGrcsResponse)
async def list_member_grcs(
    member: Member = Depends(require_member),
    user: User = Depends(require_member_user),
    db: AsyncSession = Depends(get_session),
) -> MemberGrcsResponse:
    listing = await GrcRegistrationService(db).list_member_grcs(member, user)
    return MemberGrcsResponse(
        pending=[GrcResponse.model_validate(grc) for grc in listing.pending],
        active=[GrcResponse.model_validate(grc) for grc in listing.active],
        completed=[GrcResponse.model_validate(grc) for grc in listing.completed],
        has_active_grc=listing.has_active_grc,
    )


@router.put("/grcs/order")
async def reorder_member_grcs(
    payload: QueueOrderRequest,
    member: Member = Depends(require_member),
    user: User = Depends(require_member_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    try:
        entries = await GrcRegistrationService(db).reorder_queue(member, user, payload.grc_ids)
    except GrcServiceError as exc:
        raise_http(exc)
    return {"success": True, "grcIds": [str(entry.grc_id) for entry in entries]}


@router.get("/dashboard", response_model=MemberDashboardResponse)
async def member_dashboard(
    member: Member = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> MemberDashboardResponse:
    dashboard = await MemberDashboardService(db).build(member)

    current_month = None
    if dashboard.current_qualification is not None:
        qualification = dashboard.current_qualification
        current_month = CurrentMonth(
            month=qualification.month,
            year=qualification.year,
            status=qualification.status,
            survey_completed=qualification.survey_completed_at is not None,
        )
    active_grc = None
    if dashboard.active_grc is not None:
        active_grc = ActiveGrcSummary(
            grc=GrcResponse.model_validate(dashboard.active_grc),
            merchant_name=dashboard.merchant.business_name if dashboard.merchant else None,
            merchant_slug=dashboard.merchant.slug if dashboard.merchant else None,
        )

    return MemberDashboardResponse(
        this_month_receipts=dashboard.this_month_receipts,
        amount_remaining=dashboard.amount_remaining,
        total_earned=dashboard.total_earned,
        months_qualified=dashboard.months_qualified,
        pending_receipts=dashboard.pending_receipts,
        current_month=current_month,
        active_grc=active_grc,
        has_survey=dashboard.has_survey,
        survey_id=dashboard.active_survey.id if dashboard.active_survey else None,
    )


@router.get("/receipts", response_model=list[ReceiptResponse])
async def list_receipts(
    status_filter: ReceiptStatusEnum | None = Query(None, alias="status"),
    member: Member = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> list[ReceiptResponse]:
    service = ReceiptSubmissionService(db)
    receipts = await service.list_for_member(member, status=status_filter)
    return [ReceiptResponse.model_validate(receipt) for receipt in receipts]


@router.post("/receipts/upload", response_model=ReceiptUploadResponse)
async def upload_receipt(
    payload: ReceiptUploadRequest,
    response: Response,
    member: Member = Depends(require_member),
    db: AsyncSession = Depends(get_session),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    veryfi_client: VeryfiClient = Depends(get_veryfi_client),
    storage: ReceiptImageStorage = Depends(get_receipt_storage),
) -> ReceiptUploadResponse:
    service = ReceiptSubmissionService(
        db,
        veryfi_client=veryfi_client,
        storage=storage,
        rate_limiter=rate_limiter,
    )
    upload = ReceiptUpload(
        grc_id=payload.grc_id,
        image=payload.image,
        file_name=payload.file_name,
        acknowledge_warnings=payload.acknowledge_warnings,
    )
    try:
        outcome = await service.submit(member, upload)
    except GrcServiceError as exc:
        raise_http(exc)

    checks = outcome.checks
    extracted = ExtractedReceipt(
        amount=checks.amount,
        receipt_date=checks.receipt_date.isoformat() if checks.receipt_date else None,
        store_name=checks.extracted_store_name,
        store_mismatch=checks.store_mismatch,
        date_mismatch=checks.date_mismatch,
    )
    if outcome.requires_confirmation:
        return ReceiptUploadResponse(requires_confirmation=True, warnings=checks.warnings, extracted=extracted)

    response.status_code = status.HTTP_201_CREATED
    return ReceiptUploadResponse(
        requires_confirmation=False,
        warnings=checks.warnings,
        extracted=extracted,
        receipt=ReceiptResponse.model_validate(outcome.receipt),
    )
