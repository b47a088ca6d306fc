from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from grc_api.models import (
    GrcStatusEnum,
    PaymentMethodEnum,
    PaymentStatusEnum,
    QualificationStatusEnum,
    ReceiptStatusEnum,
)

# meta: schema: grc-core


class GrcResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    merchant_id: UUID = Field(..., alias="merchantId")
    member_id: UUID | None = Field(None, alias="memberId")
    denomination: int
    cost_per_cert: float = Field(..., alias="costPerCert")
    grocery_store: str | None = Field(None, alias="groceryStore")
    grocery_store_place_id: str | None = Field(None, alias="groceryStorePlaceId")
    status: GrcStatusEnum
    months_remaining: int = Field(..., alias="monthsRemaining")
    start_month: int | None = Field(None, alias="startMonth")
    start_year: int | None = Field(None, alias="startYear")
    recipient_email: str | None = Field(None, alias="recipientEmail")
    recipient_name: str | None = Field(None, alias="recipientName")
    issued_at: datetime | None = Field(None, alias="issuedAt")
    registered_at: datetime | None = Field(None, alias="registeredAt")


class InventoryRowResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    denomination: int
    purchased: int
    issued: int
    available: int
    cost_per_cert: float | None = Field(None, alias="costPerCert")


class InventoryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    inventory: list[InventoryRowResponse]
    available_denominations: list[int] = Field(..., alias="availableDenominations")
    total_available: int = Field(..., alias="totalAvailable")


class PurchaseResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    merchant_id: UUID = Field(..., alias="merchantId")
    denomination: int
    quantity: int
    total_cost: float = Field(..., alias="totalCost")
    payment_method: PaymentMethodEnum = Field(..., alias="paymentMethod")
    payment_status: PaymentStatusEnum = Field(..., alias="paymentStatus")
    is_trial: bool = Field(False, alias="isTrial")
    zelle_account_name: str | None = Field(None, alias="zelleAccountName")
    payment_notes: str | None = Field(None, alias="paymentNotes")
    rejection_reason: str | None = Field(None, alias="rejectionReason")
    payment_confirmed_at: datetime | None = Field(None, alias="paymentConfirmedAt")
    created_at: datetime | None = Field(None, alias="createdAt")


class ReceiptResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    grc_id: UUID = Field(..., alias="grcId")
    image_url: str | None = Field(None, alias="imageUrl")
    amount: float | None = None
    receipt_date: date | None = Field(None, alias="receiptDate")
    extracted_store_name: str | None = Field(None, alias="extractedStoreName")
    store_mismatch: bool = Field(False, alias="storeMismatch")
    date_mismatch: bool = Field(False, alias="dateMismatch")
    member_override: bool = Field(False, alias="memberOverride")
    status: ReceiptStatusEnum
    rejection_reason: str | None = Field(None, alias="rejectionReason")
    rejection_notes: str | None = Field(None, alias="rejectionNotes")
    reupload_allowed_until: datetime | None = Field(None, alias="reuploadAllowedUntil")
    submitted_at: datetime | None = Field(None, alias="submittedAt")
    reviewed_at: datetime | None = Field(None, alias="reviewedAt")


class QualificationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    grc_id: UUID = Field(..., alias="grcId")
    month: int
    year: int
    approved_total: float = Field(..., alias="approvedTotal")
    survey_completed_at: datetime | None = Field(None, alias="surveyCompletedAt")
    status: QualificationStatusEnum
    reward_sent_at: datetime | None = Field(None, alias="rewardSentAt")
    gift_card_tracking_number: str | None = Field(None, alias="giftCardTrackingNumber")


class SurveyQuestion(BaseModel):
    id: str
    text: str
    type: str = "text"
    options: list[str] = Field(default_factory=list)
    required: bool = False


class SurveyResponseModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    merchant_id: UUID = Field(..., alias="merchantId")
    title: str
    questions: list[dict[str, Any]]
    is_active: bool = Field(..., alias="isActive")
    created_at: datetime | None = Field(None, alias="createdAt")


class ReviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    merchant_id: UUID = Field(..., alias="merchantId")
    grc_id: UUID | None = Field(None, alias="grcId")
    content: str
    word_count: int = Field(..., alias="wordCount")
    bonus_month_awarded: bool = Field(..., alias="bonusMonthAwarded")
    author_name: str | None = Field(None, alias="authorName")
    merchant_name: str | None = Field(None, alias="merchantName")
    created_at: datetime | None = Field(None, alias="createdAt")


def review_response(review, member=None, merchant=None) -> ReviewResponse:
    return ReviewResponse(
        id=review.id,
        merchant_id=review.merchant_id,
        grc_id=review.grc_id,
        content=review.content,
        word_count=review.word_count,
        bonus_month_awarded=review.bonus_month_awarded,
        author_name=member.short_name if member is not None else None,
        merchant_name=merchant.business_name if merchant is not None else None,
        created_at=review.created_at,
    )


def inventory_response(snapshot) -> InventoryResponse:
    return InventoryResponse(
        inventory=[InventoryRowResponse.model_validate(row) for row in snapshot.rows],
        available_denominations=snapshot.available_denominations,
        total_available=snapshot.total_available,
    )
