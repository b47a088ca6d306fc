"""Admin back office: users, receipt review, gift cards, orders, merchants and campaigns."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.api.dependencies.services import get_notification_service, get_postmark_client
from grc_api.api.dependencies.session import require_admin
from grc_api.api.errors import raise_http
from grc_api.db.session import get_session
from grc_api.models import (
    CampaignRecipientStatusEnum,
    CampaignStatusEnum,
    PaymentStatusEnum,
    ReceiptStatusEnum,
    RecipientListEnum,
    RecipientTypeEnum,
    User,
)
from grc_api.schemas.grc import (
    PurchaseResponse,
    QualificationResponse,
    ReceiptResponse,
    ReviewResponse,
    review_response,
)
from grc_api.schemas.merchant import CategoryResponse, MerchantProfileResponse
from grc_api.services.admin import (
    AdminDashboardService,
    AnalyticsService,
    CategoryService,
    GiftCardService,
    MerchantAdminService,
    MerchantPageService,
    OrderReviewService,
    UserAdminService,
    UserRow,
)
from grc_api.services.auth import normalize_email
from grc_api.services.errors import GrcServiceError, ValidationFailed
from grc_api.services.merchants import MerchantOnboardingService, ReviewService, invite_status
from grc_api.services.notifications import (
    CampaignDraft,
    CampaignService,
    NotificationService,
    PostmarkBroadcastClient,
)
from grc_api.services.receipts import ReceiptModerationService

router = APIRouter(prefix="/admin", tags=["Admin"])


class BulkResult(BaseModel):
    updated: int
    failed: int
    errors: list[dict[str, str]] = Field(default_factory=list)


# Dashboard


class ActivityResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: str
    id: str
    member_name: str = Field(..., alias="memberName")
    occurred_at: datetime = Field(..., alias="occurredAt")
    detail: str


class AdminDashboardResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pending_receipts: int = Field(..., alias="pendingReceipts")
    gift_cards_pending: int = Field(..., alias="giftCardsPending")
    active_members: int = Field(..., alias="activeMembers")
    active_merchants: int = Field(..., alias="activeMerchants")
    recent_activity: list[ActivityResponse] = Field(..., alias="recentActivity")


@router.get("/dashboard", response_model=AdminDashboardResponse)
async def admin_dashboard(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> AdminDashboardResponse:
    dashboard = await AdminDashboardService(db).build()
    return AdminDashboardResponse(
        pending_receipts=dashboard.pending_receipts,
        gift_cards_pending=dashboard.gift_cards_pending,
        active_members=dashboard.active_members,
        active_merchants=dashboard.active_merchants,
        recent_activity=[
            ActivityResponse(
                kind=item.kind,
                id=item.id,
                member_name=item.member_name,
                occurred_at=item.occurred_at,
                detail=item.detail,
            )
            for item in dashboard.recent_activity
        ],
    )


class MetricResponse(BaseModel):
    value: int
    change: int


class AnalyticsSummaryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_users: MetricResponse = Field(..., alias="totalUsers")
    active_grcs: MetricResponse = Field(..., alias="activeGrcs")
    total_receipts: MetricResponse = Field(..., alias="totalReceipts")
    gift_cards_sent: MetricResponse = Field(..., alias="giftCardsSent")


class TopMerchantResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    active_grcs: int = Field(..., alias="activeGrcs")


class TopStoreResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    receipt_count: int = Field(..., alias="receiptCount")


class AnalyticsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: AnalyticsSummaryResponse
    users_by_role: dict[str, int] = Field(..., alias="usersByRole")
    grcs_by_status: dict[str, int] = Field(..., alias="grcsByStatus")
    receipts_by_status: dict[str, int] = Field(..., alias="receiptsByStatus")
    top_merchants: list[TopMerchantResponse] = Field(..., alias="topMerchants")
    top_grocery_stores: list[TopStoreResponse] = Field(..., alias="topGroceryStores")


def _metric(metric) -> MetricResponse:
    return MetricResponse(value=metric.value, change=metric.change)


@router.get("/analytics", response_model=AnalyticsResponse)
async def admin_analytics(
    range_key: str = Query("30d", alias="range"),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> AnalyticsResponse:
    try:
        report = await AnalyticsService(db).build(range_key)
    except GrcServiceError as exc:
        raise_http(exc)
    return AnalyticsResponse(
        summary=AnalyticsSummaryResponse(
            total_users=_metric(report.total_users),
            active_grcs=_metric(report.active_grcs),
            total_receipts=_metric(report.total_receipts),
            gift_cards_sent=_metric(report.gift_cards_sent),
        ),
        users_by_role=report.users_by_role,
        grcs_by_status=report.grcs_by_status,
        receipts_by_status=report.receipts_by_status,
        top_merchants=[
            TopMerchantResponse(id=merchant_id, name=name, active_grcs=count)
            for merchant_id, name, count in report.top_merchants
        ],
        top_grocery_stores=[TopStoreResponse(name=name, receipt_count=count) for name, count in report.top_grocery_stores],
    )


# Users


class AdminUserItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    email: str
    phone: str | None = None
    role: str
    name: str | None = None
    created_at: datetime | None = Field(None, alias="createdAt")


class UserStatsResponse(BaseModel):
    total: int
    admins: int
    merchants: int
    members: int


class UserListResponse(BaseModel):
    users: list[AdminUserItem]
    stats: UserStatsResponse


class MemberDetailResponse(BaseModel):
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


class UserDetailResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: AdminUserItem
    member: MemberDetailResponse | None = None
    merchant: MerchantProfileResponse | None = None
    has_trial_grcs: bool = Field(False, alias="hasTrialGrcs")


class UserFieldsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str | None = None
    phone: str | None = None
    role: str | None = None


class MemberFieldsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    first_name: str | None = Field(None, alias="firstName")
    last_name: str | None = Field(None, alias="lastName")
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    home_city: str | None = Field(None, alias="homeCity")


class MerchantFieldsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    business_name: str | None = Field(None, alias="businessName")
    city: str | None = None
    phone: str | None = None
    website: str | None = None
    description: str | None = None
    verified: bool | None = None


class UserUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user: UserFieldsUpdate | None = None
    member: MemberFieldsUpdate | None = None
    merchant: MerchantFieldsUpdate | None = None
    role: str | None = None


def _user_item(row: UserRow) -> AdminUserItem:
    return AdminUserItem(
        id=row.user.id,
        email=row.user.email,
        phone=row.user.phone,
        role=row.user.role,
        name=row.display_name,
        created_at=row.user.created_at,
    )


def _user_detail(detail) -> UserDetailResponse:
    row = UserRow(user=detail.user, member=detail.member, merchant=detail.merchant)
    return UserDetailResponse(
        user=_user_item(row),
        member=MemberDetailResponse.model_validate(detail.member) if detail.member is not None else None,
        merchant=MerchantProfileResponse.model_validate(detail.merchant) if detail.merchant is not None else None,
        has_trial_grcs=detail.has_trial_grcs,
    )


@router.get("/users", response_model=UserListResponse)
async def list_users(
    role: str | None = Query(None),
    search: str | None = Query(None),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> UserListResponse:
    try:
        result = await UserAdminService(db).list_users(role=role, search=search)
    except GrcServiceError as exc:
        raise_http(exc)
    return UserListResponse(
        users=[_user_item(row) for row in result.users],
        stats=UserStatsResponse(
            total=result.stats.total,
            admins=result.stats.admins,
            merchants=result.stats.merchants,
            members=result.stats.members,
        ),
    )


@router.get("/users/search", response_model=list[AdminUserItem])
async def search_users(
    q: str | None = Query(None),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> list[AdminUserItem]:
    return [_user_item(row) for row in await UserAdminService(db).search(q)]


@router.get("/users/{user_id}", response_model=UserDetailResponse)
async def get_user(
    user_id: UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> UserDetailResponse:
    try:
        detail = await UserAdminService(db).get(user_id)
    except GrcServiceError as exc:
        raise_http(exc)
    return _user_detail(detail)


@router.patch("/users/{user_id}", response_model=UserDetailResponse)
async def update_user(
    user_id: UUID,
    payload: UserUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> UserDetailResponse:
    user_changes = payload.user.model_dump(exclude_unset=True) if payload.user else {}
    if payload.role is not None:
        user_changes["role"] = payload.role
    try:
        detail = await UserAdminService(db).update(
            user_id,
            acting_admin_id=admin.id,
            user_changes=user_changes,
            member_changes=payload.member.model_dump(exclude_unset=True) if payload.member else None,
            merchant_changes=payload.merchant.model_dump(exclude_unset=True) if payload.merchant else None,
        )
    except GrcServiceError as exc:
        raise_http(exc)
    return _user_detail(detail)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> Response:
    try:
        await UserAdminService(db).delete(user_id, acting_admin_id=admin.id)
    except GrcServiceError as exc:
        raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Receipts


class ReceiptReviewItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    receipt: ReceiptResponse
    member_id: UUID = Field(..., alias="memberId")
    member_name: str = Field(..., alias="memberName")
    member_email: str = Field(..., alias="memberEmail")
    grocery_store: str | None = Field(None, alias="groceryStore")
    denomination: int


class ReceiptListResponse(BaseModel):
    receipts: list[ReceiptReviewItem]
    total: int
    page: int
    limit: int


class ReceiptReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    action: Literal["approve", "reject"]
    rejection_reason: str | None = Field(None, alias="rejectionReason")
    rejection_notes: str | None = Field(None, alias="rejectionNotes")
    reupload_days: int | None = Field(None, alias="reuploadDays")


class ReceiptReviewResponse(BaseModel):
    receipt: ReceiptResponse
    qualification: QualificationResponse | None = None


class BulkReceiptReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    receipt_ids: list[UUID] = Field(..., alias="receiptIds")
    action: Literal["approve", "reject"]
    rejection_reason: str | None = Field(None, alias="rejectionReason")
    reupload_days: int | None = Field(None, alias="reuploadDays")


@router.get("/receipts", response_model=ReceiptListResponse)
async def list_receipts(
    status_filter: ReceiptStatusEnum | None = Query(ReceiptStatusEnum.PENDING, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> ReceiptListResponse:
    result = await ReceiptModerationService(db).list_receipts(status=status_filter, page=page, limit=limit)
    return ReceiptListResponse(
        receipts=[
            ReceiptReviewItem(
                receipt=ReceiptResponse.model_validate(row.receipt),
                member_id=row.member.id,
                member_name=row.member.display_name,
                member_email=row.email,
                grocery_store=row.grc.grocery_store,
                denomination=row.grc.denomination,
            )
            for row in result.rows
        ],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.patch("/receipts/{receipt_id}", response_model=ReceiptReviewResponse)
async def review_receipt(
    receipt_id: UUID,
    payload: ReceiptReviewRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> ReceiptReviewResponse:
    service = ReceiptModerationService(db, notification_service=notifications)
    try:
        if payload.action == "approve":
            outcome = await service.approve(receipt_id, reviewer_id=admin.id)
        else:
            outcome = await service.reject(
                receipt_id,
                reviewer_id=admin.id,
                reason=payload.rejection_reason,
                notes=payload.rejection_notes,
                reupload_days=payload.reupload_days,
            )
    except GrcServiceError as exc:
        raise_http(exc)

    qualification = None
    if outcome.qualification is not None:
        qualification = QualificationResponse.model_validate(outcome.qualification.qualification)
    return ReceiptReviewResponse(receipt=ReceiptResponse.model_validate(outcome.receipt), qualification=qualification)


@router.post("/receipts/bulk", response_model=BulkResult)
async def bulk_review_receipts(
    payload: BulkReceiptReviewRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> BulkResult:
    service = ReceiptModerationService(db, notification_service=notifications)
    try:
        result = await service.bulk_review(
            payload.receipt_ids,
            action=payload.action,
            reviewer_id=admin.id,
            reason=payload.rejection_reason,
            reupload_days=payload.reupload_days,
        )
    except GrcServiceError as exc:
        raise_http(exc)
    return BulkResult(updated=result.updated, failed=result.failed, errors=result.errors)


# Gift cards


class GiftCardItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    qualification: QualificationResponse
    member_id: UUID = Field(..., alias="memberId")
    member_name: str = Field(..., alias="memberName")
    member_email: str = Field(..., alias="memberEmail")
    mailing_address: str | None = Field(None, alias="mailingAddress")
    grocery_store: str | None = Field(None, alias="groceryStore")
    merchant_name: str = Field(..., alias="merchantName")


class GiftCardStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pending: int
    sent: int
    pending_amount: float = Field(..., alias="pendingAmount")


class GiftCardListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    gift_cards: list[GiftCardItem] = Field(..., alias="giftCards")
    total: int
    page: int
    limit: int
    stats: GiftCardStatsResponse


class GiftCardUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    action: Literal["mark_sent"]
    tracking_number: str | None = Field(None, alias="trackingNumber")


class BulkGiftCardRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    qualification_ids: list[UUID] = Field(..., alias="qualificationIds", min_length=1)
    tracking_numbers: dict[str, str] | None = Field(None, alias="trackingNumbers")


def _mailing_address(member) -> str | None:
    parts = [member.address, member.city, " ".join(part for part in (member.state, member.zip) if part)]
    joined = ", ".join(part for part in parts if part)
    return joined or None


@router.get("/gift-cards", response_model=GiftCardListResponse)
async def list_gift_cards(
    status_filter: Literal["pending", "sent"] | None = Query(None, alias="status"),
    month: int | None = Query(None, ge=1, le=12),
    year: int | None = Query(None, ge=2000),
    search: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> GiftCardListResponse:
    result = await GiftCardService(db).list_gift_cards(
        status=status_filter,
        month=month,
        year=year,
        search=search,
        page=page,
        limit=limit,
    )
    return GiftCardListResponse(
        gift_cards=[
            GiftCardItem(
                qualification=QualificationResponse.model_validate(row.qualification),
                member_id=row.member.id,
                member_name=row.member.display_name,
                member_email=row.email,
                mailing_address=_mailing_address(row.member),
                grocery_store=row.grc.grocery_store,
                merchant_name=row.merchant_name,
            )
            for row in result.rows
        ],
        total=result.total,
        page=result.page,
        limit=result.limit,
        stats=GiftCardStatsResponse(
            pending=result.stats.pending,
            sent=result.stats.sent,
            pending_amount=float(result.stats.pending_amount),
        ),
    )


@router.patch("/gift-cards/{qualification_id}", response_model=QualificationResponse)
async def mark_gift_card_sent(
    qualification_id: UUID,
    payload: GiftCardUpdateRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> QualificationResponse:
    service = GiftCardService(db, notification_service=notifications)
    try:
        qualification = await service.mark_sent(qualification_id, tracking_number=payload.tracking_number)
    except GrcServiceError as exc:
        raise_http(exc)
    return QualificationResponse.model_validate(qualification)


@router.post("/gift-cards/bulk", response_model=BulkResult)
async def bulk_mark_gift_cards_sent(
    payload: BulkGiftCardRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> BulkResult:
    service = GiftCardService(db, notification_service=notifications)
    try:
        result = await service.bulk_mark_sent(payload.qualification_ids, tracking_numbers=payload.tracking_numbers)
    except GrcServiceError as exc:
        raise_http(exc)
    return BulkResult(updated=result.updated, failed=result.failed, errors=result.errors)


# Orders


class AdminOrderItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order: PurchaseResponse
    merchant_name: str = Field(..., alias="merchantName")


class OrderReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    action: Literal["approve", "reject"]
    notes: str | None = None
    reason: str | None = None


@router.get("/orders", response_model=list[AdminOrderItem])
async def list_orders(
    status_filter: PaymentStatusEnum | None = Query(None, alias="status"),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> list[AdminOrderItem]:
    rows = await OrderReviewService(db).list_orders(status=status_filter)
    return [
        AdminOrderItem(order=PurchaseResponse.model_validate(purchase), merchant_name=merchant.business_name)
        for purchase, merchant in rows
    ]


@router.patch("/orders/{purchase_id}", response_model=PurchaseResponse)
async def review_order(
    purchase_id: UUID,
    payload: OrderReviewRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> PurchaseResponse:
    service = OrderReviewService(db, notification_service=notifications)
    try:
        purchase = await service.review(
            purchase_id,
            action=payload.action,
            reviewer_id=admin.id,
            notes=payload.notes,
            reason=payload.reason,
        )
    except GrcServiceError as exc:
        raise_http(exc)
    return PurchaseResponse.model_validate(purchase)


# Merchants


class AdminMerchantItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    merchant: MerchantProfileResponse
    email: str | None = None
    category_name: str | None = Field(None, alias="categoryName")
    total_purchased: int = Field(..., alias="totalPurchased")
    total_available: int = Field(..., alias="totalAvailable")


class MerchantUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    verified: bool | None = None
    category_id: UUID | None = Field(None, alias="categoryId")


class TrialGrantRequest(BaseModel):
    denomination: int


@router.get("/merchants", response_model=list[AdminMerchantItem])
async def list_merchants(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> list[AdminMerchantItem]:
    summaries = await MerchantAdminService(db).list_merchants()
    return [
        AdminMerchantItem(
            merchant=MerchantProfileResponse.model_validate(summary.merchant),
            email=summary.email,
            category_name=summary.category_name,
            total_purchased=summary.total_purchased,
            total_available=summary.total_available,
        )
        for summary in summaries
    ]


@router.patch("/merchants/{merchant_id}", response_model=MerchantProfileResponse)
async def update_merchant(
    merchant_id: UUID,
    payload: MerchantUpdateRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> MerchantProfileResponse:
    changes = payload.model_dump(exclude_unset=True)
    try:
        merchant = await MerchantAdminService(db).update(merchant_id, **changes)
    except GrcServiceError as exc:
        raise_http(exc)
    return MerchantProfileResponse.model_validate(merchant)


@router.post(
    "/merchants/{merchant_id}/trial",
    response_model=PurchaseResponse,
    status_code=status.HTTP_201_CREATED,
)
async def grant_trial(
    merchant_id: UUID,
    payload: TrialGrantRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> PurchaseResponse:
    try:
        purchase = await MerchantAdminService(db).grant_trial(
            merchant_id,
            denomination=payload.denomination,
            admin_id=admin.id,
        )
    except GrcServiceError as exc:
        raise_http(exc)
    return PurchaseResponse.model_validate(purchase)


# Public merchant pages


class MerchantPageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    business_name: str | None = Field(None, alias="businessName")
    street_address: str | None = Field(None, alias="streetAddress")
    city: str | None = None
    state: str | None = None
    zip_code: str | None = Field(None, alias="zipCode")
    phone: str | None = None
    website: str | None = None
    category_id: UUID | None = Field(None, alias="categoryId")
    description: str | None = None
    vimeo_url: str | None = Field(None, alias="vimeoUrl")
    google_place_id: str | None = Field(None, alias="googlePlaceId")


class MerchantPageItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    merchant: MerchantProfileResponse
    category_name: str | None = Field(None, alias="categoryName")
    completion_percentage: int = Field(..., alias="completionPercentage")


class MerchantPageListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    merchants: list[MerchantPageItem]
    total: int
    page: int
    limit: int
    total_pages: int = Field(..., alias="totalPages")


@router.get("/merchant-pages", response_model=MerchantPageListResponse)
async def list_merchant_pages(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str | None = Query(None),
    category_id: UUID | None = Query(None, alias="categoryId"),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> MerchantPageListResponse:
    result = await MerchantPageService(db).list_pages(page=page, limit=limit, search=search, category_id=category_id)
    return MerchantPageListResponse(
        merchants=[
            MerchantPageItem(
                merchant=MerchantProfileResponse.model_validate(row.merchant),
                category_name=row.category_name,
                completion_percentage=row.completion_percentage,
            )
            for row in result.pages
        ],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.post("/merchant-pages", response_model=MerchantProfileResponse, status_code=status.HTTP_201_CREATED)
async def create_merchant_page(
    payload: MerchantPageRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> MerchantProfileResponse:
    try:
        merchant = await MerchantPageService(db).create(payload.model_dump())
    except GrcServiceError as exc:
        raise_http(exc)
    return MerchantProfileResponse.model_validate(merchant)


@router.patch("/merchant-pages/{merchant_id}", response_model=MerchantProfileResponse)
async def update_merchant_page(
    merchant_id: UUID,
    payload: MerchantPageRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> MerchantProfileResponse:
    try:
        merchant = await MerchantPageService(db).update(merchant_id, payload.model_dump(exclude_unset=True))
    except GrcServiceError as exc:
        raise_http(exc)
    return MerchantProfileResponse.model_validate(merchant)


@router.delete("/merchant-pages/{merchant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_merchant_page(
    merchant_id: UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> Response:
    try:
        await MerchantPageService(db).delete(merchant_id)
    except GrcServiceError as exc:
        raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Merchant invites


class InviteCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    email: str | None = None
    business_name: str | None = Field(None, alias="businessName")
    expires_in_days: int = Field(7, alias="expiresInDays")


class InviteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    email: str | None = None
    business_name: str | None = Field(None, alias="businessName")
    status: Literal["pending", "used", "expired"]
    expires_at: datetime = Field(..., alias="expiresAt")
    used_at: datetime | None = Field(None, alias="usedAt")
    created_at: datetime | None = Field(None, alias="createdAt")


class CreatedInviteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invite: InviteResponse
    invite_url: str = Field(..., alias="inviteUrl")


class InviteStatsResponse(BaseModel):
    total: int
    pending: int
    used: int
    expired: int


class InviteListResponse(BaseModel):
    invites: list[InviteResponse]
    stats: InviteStatsResponse


def _invite_response(invite) -> InviteResponse:
    return InviteResponse(
        id=invite.id,
        email=invite.email,
        business_name=invite.business_name,
        status=invite_status(invite),
        expires_at=invite.expires_at,
        used_at=invite.used_at,
        created_at=invite.created_at,
    )


@router.post("/merchant-invites", response_model=CreatedInviteResponse, status_code=status.HTTP_201_CREATED)
async def create_invite(
    payload: InviteCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> CreatedInviteResponse:
    try:
        created = await MerchantOnboardingService(db).create_invite(
            created_by=admin.id,
            email=payload.email,
            business_name=payload.business_name,
            expires_in_days=payload.expires_in_days,
        )
    except GrcServiceError as exc:
        raise_http(exc, include_code=True)
    return CreatedInviteResponse(invite=_invite_response(created.invite), invite_url=created.invite_url)


@router.get("/merchant-invites", response_model=InviteListResponse)
async def list_invites(
    status_filter: Literal["pending", "used", "expired"] | None = Query(None, alias="status"),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> InviteListResponse:
    invites, stats = await MerchantOnboardingService(db).list_invites(status=status_filter)
    return InviteListResponse(
        invites=[_invite_response(invite) for invite in invites],
        stats=InviteStatsResponse(total=stats.total, pending=stats.pending, used=stats.used, expired=stats.expired),
    )


@router.delete("/merchant-invites/{invite_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_invite(
    invite_id: UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> Response:
    try:
        await MerchantOnboardingService(db).revoke_invite(invite_id)
    except GrcServiceError as exc:
        raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Categories


class CategoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> list[CategoryResponse]:
    rows = await CategoryService(db).list_with_counts()
    return [CategoryResponse(id=category.id, name=category.name, merchant_count=count) for category, count in rows]


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreateRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> CategoryResponse:
    try:
        category = await CategoryService(db).create(payload.name)
    except GrcServiceError as exc:
        raise_http(exc)
    return CategoryResponse(id=category.id, name=category.name, merchant_count=0)


@router.patch("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: UUID,
    payload: CategoryCreateRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> CategoryResponse:
    service = CategoryService(db)
    try:
        category = await service.update(category_id, payload.name)
    except GrcServiceError as exc:
        raise_http(exc)
    counts = {row.id: count for row, count in await service.list_with_counts()}
    return CategoryResponse(id=category.id, name=category.name, merchant_count=counts.get(category.id, 0))


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> Response:
    try:
        await CategoryService(db).delete(category_id)
    except GrcServiceError as exc:
        raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Reviews


@router.get("/reviews", response_model=list[ReviewResponse])
async def list_reviews(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> list[ReviewResponse]:
    rows = await ReviewService(db).list_all(limit=limit, offset=offset)
    return [review_response(review, member, merchant) for review, member, merchant in rows]


@router.delete("/reviews/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> Response:
    try:
        await ReviewService(db).delete(review_id)
    except GrcServiceError as exc:
        raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Email campaigns


class CampaignRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    subject: str
    content: str
    preview_text: str | None = Field(None, alias="previewText")
    recipient_type: RecipientTypeEnum = Field(..., alias="recipientType")
    recipient_lists: list[RecipientListEnum] | None = Field(None, alias="recipientLists")
    individual_recipient_id: UUID | None = Field(None, alias="individualRecipientId")


class CampaignUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    subject: str | None = None
    content: str | None = None
    preview_text: str | None = Field(None, alias="previewText")
    recipient_type: RecipientTypeEnum | None = Field(None, alias="recipientType")
    recipient_lists: list[RecipientListEnum] | None = Field(None, alias="recipientLists")
    individual_recipient_id: UUID | None = Field(None, alias="individualRecipientId")


class CampaignResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    subject: str
    preview_text: str | None = Field(None, alias="previewText")
    content: str
    recipient_type: RecipientTypeEnum = Field(..., alias="recipientType")
    recipient_lists: list[str] | None = Field(None, alias="recipientLists")
    individual_recipient_id: UUID | None = Field(None, alias="individualRecipientId")
    recipient_count: int = Field(0, alias="recipientCount")
    status: CampaignStatusEnum
    sent_at: datetime | None = Field(None, alias="sentAt")
    total_sent: int = Field(0, alias="totalSent")
    total_failed: int = Field(0, alias="totalFailed")
    unique_opens: int = Field(0, alias="uniqueOpens")
    unique_clicks: int = Field(0, alias="uniqueClicks")
    total_bounces: int = Field(0, alias="totalBounces")
    created_at: datetime | None = Field(None, alias="createdAt")


class RecipientCountResponse(BaseModel):
    count: int


class CampaignRecipientResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    email: str
    name: str | None = None
    status: CampaignRecipientStatusEnum
    sent_at: datetime | None = Field(None, alias="sentAt")
    opened_at: datetime | None = Field(None, alias="openedAt")
    clicked_at: datetime | None = Field(None, alias="clickedAt")
    bounced_at: datetime | None = Field(None, alias="bouncedAt")
    error_message: str | None = Field(None, alias="errorMessage")


class CampaignRecipientsPage(BaseModel):
    recipients: list[CampaignRecipientResponse]
    total: int
    page: int
    limit: int


class PreviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    content: str
    subject: str = ""
    sample_name: str | None = Field(None, alias="sampleName")


class PreviewResponse(BaseModel):
    subject: str
    html: str


def _campaign_service(db: AsyncSession, postmark: PostmarkBroadcastClient | None = None) -> CampaignService:
    return CampaignService(db, postmark_client=postmark)


@router.get("/emails", response_model=list[CampaignResponse])
async def list_campaigns(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> list[CampaignResponse]:
    campaigns = await _campaign_service(db).list_campaigns()
    return [CampaignResponse.model_validate(campaign) for campaign in campaigns]


@router.post("/emails", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    payload: CampaignRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> CampaignResponse:
    draft = CampaignDraft(
        subject=payload.subject,
        content=payload.content,
        recipient_type=payload.recipient_type,
        recipient_lists=payload.recipient_lists,
        individual_recipient_id=payload.individual_recipient_id,
        preview_text=payload.preview_text,
    )
    try:
        campaign = await _campaign_service(db).create(draft, created_by=admin.id)
    except GrcServiceError as exc:
        raise_http(exc)
    return CampaignResponse.model_validate(campaign)


@router.get("/emails/recipient-count", response_model=RecipientCountResponse)
async def recipient_count(
    lists: str | None = Query(None, description="Comma separated list names"),
    individual_id: UUID | None = Query(None, alias="individualId"),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> RecipientCountResponse:
    try:
        parsed = [RecipientListEnum(item.strip()) for item in (lists or "").split(",") if item.strip()]
    except ValueError:
        raise_http(ValidationFailed("Unknown recipient list"))
    count = await _campaign_service(db).count_recipients(lists=parsed, individual_id=individual_id)
    return RecipientCountResponse(count=count)


@router.post("/emails/preview", response_model=PreviewResponse)
async def preview_campaign(
    payload: PreviewRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> PreviewResponse:
    subject, html = _campaign_service(db).preview(
        payload.content,
        subject=payload.subject,
        sample_name=payload.sample_name,
    )
    return PreviewResponse(subject=subject, html=html)


class CampaignTestSendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    subject: str = ""
    content: str = ""
    preview_text: str | None = Field(None, alias="previewText")
    test_email: str = Field("", alias="testEmail")


class CampaignTestSendResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message_id: str | None = Field(None, alias="messageId")


@router.post("/emails/test", response_model=CampaignTestSendResponse)
async def send_test_email(
    payload: CampaignTestSendRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    postmark: PostmarkBroadcastClient = Depends(get_postmark_client),
) -> CampaignTestSendResponse:
    try:
        if not payload.test_email.strip():
            raise ValidationFailed("Subject, content, and test email are required")
        message_id = await _campaign_service(db, postmark).send_test(
            to=normalize_email(payload.test_email),
            subject=payload.subject,
            content=payload.content,
            preview_text=payload.preview_text,
        )
    except GrcServiceError as exc:
        raise_http(exc)
    return CampaignTestSendResponse(success=True, message_id=message_id)


@router.get("/emails/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(
    campaign_id: UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> CampaignResponse:
    try:
        campaign = await _campaign_service(db).get(campaign_id)
    except GrcServiceError as exc:
        raise_http(exc)
    return CampaignResponse.model_validate(campaign)


@router.put("/emails/{campaign_id}", response_model=CampaignResponse)
async def update_campaign(
    campaign_id: UUID,
    payload: CampaignUpdateRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> CampaignResponse:
    try:
        campaign = await _campaign_service(db).update(campaign_id, payload.model_dump(exclude_unset=True))
    except GrcServiceError as exc:
        raise_http(exc)
    return CampaignResponse.model_validate(campaign)


@router.delete("/emails/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_campaign(
    campaign_id: UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> Response:
    try:
        await _campaign_service(db).delete(campaign_id)
    except GrcServiceError as exc:
        raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/emails/{campaign_id}/send", response_model=CampaignResponse)
async def send_campaign(
    campaign_id: UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    postmark: PostmarkBroadcastClient = Depends(get_postmark_client),
) -> CampaignResponse:
    try:
        campaign = await _campaign_service(db, postmark).send(campaign_id)
    except GrcServiceError as exc:
        raise_http(exc)
    return CampaignResponse.model_validate(campaign)


@router.post("/emails/{campaign_id}/sync-stats", response_model=CampaignResponse)
async def sync_campaign_stats(
    campaign_id: UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> CampaignResponse:
    try:
        campaign = await _campaign_service(db).sync_stats(campaign_id)
    except GrcServiceError as exc:
        raise_http(exc)
    return CampaignResponse.model_validate(campaign)


@router.get("/emails/{campaign_id}/recipients", response_model=CampaignRecipientsPage)
async def list_campaign_recipients(
    campaign_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> CampaignRecipientsPage:
    try:
        result = await _campaign_service(db).list_recipients(campaign_id, page=page, limit=limit)
    except GrcServiceError as exc:
        raise_http(exc)
    return CampaignRecipientsPage(
        recipients=[CampaignRecipientResponse.model_validate(row) for row in result.rows],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )
