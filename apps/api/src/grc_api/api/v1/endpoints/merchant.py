"""Merchant portal: inventory orders, certificate issuance, profile and surveys."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.api.dependencies.services import get_notification_service
from grc_api.api.dependencies.session import require_merchant
from grc_api.api.errors import raise_http
from grc_api.db.session import get_session
from grc_api.domain.grc import OrderLine
from grc_api.models import GrcStatusEnum, Merchant
from grc_api.schemas.grc import (
    GrcResponse,
    InventoryResponse,
    PurchaseResponse,
    ReviewResponse,
    SurveyQuestion,
    SurveyResponseModel,
    inventory_response,
    review_response,
)
from grc_api.schemas.merchant import MerchantProfileEnvelope, profile_envelope
from grc_api.services.errors import GrcServiceError
from grc_api.services.grc import BankDetails, GrcIssuanceService, InventoryService, IssueRequest
from grc_api.services.merchants import MerchantDashboardService, MerchantProfileService, ReviewService, SurveyService
from grc_api.services.notifications import NotificationService

router = APIRouter(prefix="/merchant", tags=["Merchant"])


class OrderItem(BaseModel):
    denomination: int
    quantity: int


class BankDetailsPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    routing_number: str = Field(..., alias="routingNumber", min_length=9, max_length=9)
    account_number: str = Field(..., alias="accountNumber", min_length=4, max_length=17)
    account_holder_name: str = Field(..., alias="accountHolderName", min_length=1)
    account_type: Literal["checking", "savings"] = Field("checking", alias="accountType")
    bank_name: str | None = Field(None, alias="bankName")

    def to_details(self) -> BankDetails:
        return BankDetails(**self.model_dump())


class OrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    items: list[OrderItem] = Field(..., min_length=1)
    payment_method: str = Field(..., alias="paymentMethod")
    zelle_account_name: str | None = Field(None, alias="zelleAccountName")
    bank_details: BankDetailsPayload | None = Field(None, alias="bankDetails")
    save_bank_info: bool = Field(False, alias="saveBankInfo")
    use_saved_bank: bool = Field(False, alias="useSavedBank")
    notes: str | None = None


class OrdersResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    orders: list[PurchaseResponse]
    inventory: InventoryResponse
    available_denominations: list[int] = Field(..., alias="availableDenominations")


class BankAccountResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_account: bool = Field(..., alias="hasAccount")
    bank_name: str | None = Field(None, alias="bankName")
    account_type: str | None = Field(None, alias="accountType")
    account_holder_name: str | None = Field(None, alias="accountHolderName")
    routing_last4: str | None = Field(None, alias="routingLast4")
    account_last4: str | None = Field(None, alias="accountLast4")


class IssueGrcRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    email: str
    recipient_name: str = Field(..., alias="recipientName")
    denomination: int


class BulkIssueRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    recipients: list[IssueGrcRequest] = Field(..., min_length=1, max_length=500)


class BulkIssueFailure(BaseModel):
    email: str
    error: str


class BulkIssueResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    issued: list[GrcResponse]
    failed: list[BulkIssueFailure]
    total_issued: int = Field(..., alias="totalIssued")
    total_failed: int = Field(..., alias="totalFailed")


class MerchantProfileUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    business_name: str | None = Field(None, alias="businessName")
    category_id: UUID | None = Field(None, alias="categoryId")
    street_address: str | None = Field(None, alias="streetAddress")
    city: str | None = None
    state: str | None = None
    zip_code: str | None = Field(None, alias="zipCode")
    phone: str | None = None
    website: str | None = None
    description: str | None = None
    about_story: str | None = Field(None, alias="aboutStory")
    logo_url: str | None = Field(None, alias="logoUrl")
    vimeo_url: str | None = Field(None, alias="vimeoUrl")
    instagram_url: str | None = Field(None, alias="instagramUrl")
    facebook_url: str | None = Field(None, alias="facebookUrl")
    tiktok_url: str | None = Field(None, alias="tiktokUrl")
    hours: dict[str, Any] | None = None
    photos: list[Any] | None = None
    services: list[Any] | None = None
    google_place_id: str | None = Field(None, alias="googlePlaceId")


class RecentGrc(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    grc: GrcResponse
    member_name: str | None = Field(None, alias="memberName")


class MerchantDashboardResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    grc_counts: dict[str, int] = Field(..., alias="grcCounts")
    active_members: int = Field(..., alias="activeMembers")
    review_count: int = Field(..., alias="reviewCount")
    average_review_words: float = Field(..., alias="averageReviewWords")
    inventory: InventoryResponse
    recent_grcs: list[RecentGrc] = Field(..., alias="recentGrcs")


class SurveyCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    title: str = Field(..., min_length=1)
    questions: list[SurveyQuestion] = Field(..., min_length=1)
    is_active: bool = Field(True, alias="isActive")


class SurveyUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    title: str | None = None
    questions: list[SurveyQuestion] | None = None
    is_active: bool | None = Field(None, alias="isActive")


class SurveySummaryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    survey: SurveyResponseModel
    response_count: int = Field(..., alias="responseCount")


class SurveyAnswerRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    member_name: str = Field(..., alias="memberName")
    grc_id: UUID = Field(..., alias="grcId")
    month: int | None = None
    year: int | None = None
    answers: dict[str, Any]
    completed_at: datetime | None = Field(None, alias="completedAt")


@router.get("/orders", response_model=OrdersResponse)
async def list_orders(
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> OrdersResponse:
    service = InventoryService(db)
    orders = await service.list_orders(merchant.id)
    snapshot = await service.get_inventory(merchant.id)
    return OrdersResponse(
        orders=[PurchaseResponse.model_validate(order) for order in orders],
        inventory=inventory_response(snapshot),
        available_denominations=snapshot.available_denominations,
    )


@router.post("/orders", response_model=list[PurchaseResponse], status_code=status.HTTP_201_CREATED)
async def place_order(
    payload: OrderRequest,
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> list[PurchaseResponse]:
    service = InventoryService(db, notification_service=notifications)
    try:
        purchases = await service.place_order(
            merchant,
            [OrderLine(denomination=item.denomination, quantity=item.quantity) for item in payload.items],
            payment_method=payload.payment_method,
            zelle_account_name=payload.zelle_account_name,
            bank_details=payload.bank_details.to_details() if payload.bank_details else None,
            save_bank_info=payload.save_bank_info,
            use_saved_bank=payload.use_saved_bank,
            notes=payload.notes,
        )
    except GrcServiceError as exc:
        raise_http(exc)
    return [PurchaseResponse.model_validate(purchase) for purchase in purchases]


@router.get("/bank-account", response_model=BankAccountResponse)
async def get_bank_account(
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> BankAccountResponse:
    account = await InventoryService(db).get_bank_account(merchant.id)
    if account is None:
        return BankAccountResponse(has_account=False)
    return BankAccountResponse(
        has_account=True,
        bank_name=account.bank_name,
        account_type=account.account_type,
        account_holder_name=account.account_holder_name,
        routing_last4=account.routing_last4,
        account_last4=account.account_last4,
    )


@router.put("/bank-account", response_model=BankAccountResponse)
async def save_bank_account(
    payload: BankDetailsPayload,
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> BankAccountResponse:
    account = await InventoryService(db).save_bank_account(merchant.id, payload.to_details())
    await db.commit()
    return BankAccountResponse(
        has_account=True,
        bank_name=account.bank_name,
        account_type=account.account_type,
        account_holder_name=account.account_holder_name,
        routing_last4=account.routing_last4,
        account_last4=account.account_last4,
    )


@router.get("/grcs", response_model=list[GrcResponse])
async def list_grcs(
    status_filter: GrcStatusEnum | None = Query(None, alias="status"),
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> list[GrcResponse]:
    grcs = await GrcIssuanceService(db).list_for_merchant(merchant.id, status=status_filter)
    return [GrcResponse.model_validate(grc) for grc in grcs]


@router.get("/grcs/inventory", response_model=InventoryResponse)
async def grc_inventory(
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> InventoryResponse:
    return inventory_response(await InventoryService(db).get_inventory(merchant.id))


@router.post("/grcs", response_model=GrcResponse, status_code=status.HTTP_201_CREATED)
async def issue_grc(
    payload: IssueGrcRequest,
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> GrcResponse:
    service = GrcIssuanceService(db, notification_service=notifications)
    try:
        grc = await service.issue(merchant, IssueRequest(**payload.model_dump()))
    except GrcServiceError as exc:
        raise_http(exc)
    return GrcResponse.model_validate(grc)


@router.post("/grcs/bulk", response_model=BulkIssueResponse)
async def bulk_issue_grcs(
    payload: BulkIssueRequest,
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> BulkIssueResponse:
    service = GrcIssuanceService(db, notification_service=notifications)
    try:
        result = await service.bulk_issue(
            merchant,
            [IssueRequest(**recipient.model_dump()) for recipient in payload.recipients],
        )
    except GrcServiceError as exc:
        raise_http(exc)
    return BulkIssueResponse(
        issued=[GrcResponse.model_validate(grc) for grc in result.issued],
        failed=[BulkIssueFailure(email=email, error=error) for email, error in result.failures],
        total_issued=len(result.issued),
        total_failed=len(result.failures),
    )


@router.get("/profile", response_model=MerchantProfileEnvelope)
async def get_profile(
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> MerchantProfileEnvelope:
    return profile_envelope(await MerchantProfileService(db).view(merchant))


@router.put("/profile", response_model=MerchantProfileEnvelope)
async def update_profile(
    payload: MerchantProfileUpdate,
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> MerchantProfileEnvelope:
    try:
        view = await MerchantProfileService(db).update(merchant, payload.model_dump(exclude_unset=True))
    except GrcServiceError as exc:
        raise_http(exc)
    return profile_envelope(view)


@router.get("/dashboard", response_model=MerchantDashboardResponse)
async def merchant_dashboard(
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> MerchantDashboardResponse:
    dashboard = await MerchantDashboardService(db).build(merchant)
    return MerchantDashboardResponse(
        grc_counts=dashboard.grc_counts,
        active_members=dashboard.active_members,
        review_count=dashboard.review_count,
        average_review_words=dashboard.average_review_words,
        inventory=inventory_response(dashboard.inventory),
        recent_grcs=[
            RecentGrc(grc=GrcResponse.model_validate(grc), member_name=member.short_name if member else None)
            for grc, member in dashboard.recent
        ],
    )


@router.get("/surveys", response_model=list[SurveySummaryResponse])
async def list_surveys(
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> list[SurveySummaryResponse]:
    summaries = await SurveyService(db).list_with_counts(merchant.id)
    return [
        SurveySummaryResponse(
            survey=SurveyResponseModel.model_validate(summary.survey),
            response_count=summary.response_count,
        )
        for summary in summaries
    ]


@router.post("/surveys", response_model=SurveyResponseModel, status_code=status.HTTP_201_CREATED)
async def create_survey(
    payload: SurveyCreateRequest,
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> SurveyResponseModel:
    try:
        survey = await SurveyService(db).create(
            merchant.id,
            title=payload.title,
            questions=[question.model_dump() for question in payload.questions],
            is_active=payload.is_active,
        )
    except GrcServiceError as exc:
        raise_http(exc)
    return SurveyResponseModel.model_validate(survey)


@router.get("/surveys/{survey_id}", response_model=SurveyResponseModel)
async def get_survey(
    survey_id: UUID,
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> SurveyResponseModel:
    try:
        survey = await SurveyService(db).get(merchant.id, survey_id)
    except GrcServiceError as exc:
        raise_http(exc)
    return SurveyResponseModel.model_validate(survey)


@router.put("/surveys/{survey_id}", response_model=SurveyResponseModel)
async def update_survey(
    survey_id: UUID,
    payload: SurveyUpdateRequest,
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> SurveyResponseModel:
    try:
        survey = await SurveyService(db).update(
            merchant.id,
            survey_id,
            title=payload.title,
            questions=[question.model_dump() for question in payload.questions] if payload.questions else None,
            is_active=payload.is_active,
        )
    except GrcServiceError as exc:
        raise_http(exc)
    return SurveyResponseModel.model_validate(survey)


@router.get("/surveys/{survey_id}/responses", response_model=list[SurveyAnswerRow])
async def list_survey_responses(
    survey_id: UUID,
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> list[SurveyAnswerRow]:
    try:
        rows = await SurveyService(db).list_responses(merchant.id, survey_id)
    except GrcServiceError as exc:
        raise_http(exc)
    return [
        SurveyAnswerRow(
            id=response.id,
            member_name=member.display_name,
            grc_id=response.grc_id,
            month=response.month,
            year=response.year,
            answers=response.answers or {},
            completed_at=response.completed_at,
        )
        for response, member in rows
    ]


@router.get("/reviews", response_model=list[ReviewResponse])
async def list_reviews(
    merchant: Merchant = Depends(require_merchant),
    db: AsyncSession = Depends(get_session),
) -> list[ReviewResponse]:
    rows = await ReviewService(db).list_for_merchant(merchant.id)
    return [review_response(review, member) for review, member in rows]
