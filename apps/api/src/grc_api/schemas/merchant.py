from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# meta: schema: merchant-profile


class SectionCompletionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    label: str
    completed: int
    total: int
    percentage: int
    missing_fields: list[str] = Field(default_factory=list, alias="missingFields")


class CompletionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    completed: int
    total: int
    percentage: int
    missing_fields: list[str] = Field(default_factory=list, alias="missingFields")
    sections: list[SectionCompletionResponse]


class MerchantProfileResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    business_name: str = Field(..., alias="businessName")
    slug: str | None = None
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
    verified: bool = False
    is_public_page: bool = Field(False, alias="isPublicPage")
    created_at: datetime | None = Field(None, alias="createdAt")


class MerchantProfileEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    profile: MerchantProfileResponse
    email: str | None = None
    category_name: str | None = Field(None, alias="categoryName")
    completion: CompletionResponse | None = None
    review_count: int | None = Field(None, alias="reviewCount")


class CategoryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    name: str
    merchant_count: int | None = Field(None, alias="merchantCount")


def profile_envelope(view) -> MerchantProfileEnvelope:
    return MerchantProfileEnvelope(
        profile=MerchantProfileResponse.model_validate(view.merchant),
        email=view.email,
        category_name=view.category_name,
        completion=CompletionResponse.model_validate(view.completion),
    )
