"""Email preference lookup and unsubscribe."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.api.errors import raise_http
from grc_api.db.session import get_session
from grc_api.services.errors import GrcServiceError
from grc_api.services.notifications import EmailPreferenceService, PreferenceSnapshot

router = APIRouter(prefix="/unsubscribe", tags=["Email"])


class PreferencesResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    marketing_emails: bool = Field(..., alias="marketingEmails")
    transactional_emails: bool = Field(..., alias="transactionalEmails")
    unsubscribed_all: bool = Field(..., alias="unsubscribedAll")


class PreferencesUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    user_id: UUID | None = Field(None, alias="userId")
    email: str | None = None
    marketing_emails: bool | None = Field(None, alias="marketingEmails")
    transactional_emails: bool | None = Field(None, alias="transactionalEmails")
    unsubscribed_all: bool | None = Field(None, alias="unsubscribedAll")


def _to_response(snapshot: PreferenceSnapshot) -> PreferencesResponse:
    return PreferencesResponse(
        marketing_emails=snapshot.marketing_emails,
        transactional_emails=snapshot.transactional_emails,
        unsubscribed_all=snapshot.unsubscribed_all,
    )


@router.get("", response_model=PreferencesResponse)
async def get_preferences(
    user_id: UUID | None = Query(None, alias="userId"),
    email: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> PreferencesResponse:
    try:
        snapshot = await EmailPreferenceService(db).get(user_id=user_id, email=email)
    except GrcServiceError as exc:
        raise_http(exc)
    return _to_response(snapshot)


@router.post("", response_model=PreferencesResponse)
async def update_preferences(
    payload: PreferencesUpdate,
    db: AsyncSession = Depends(get_session),
) -> PreferencesResponse:
    try:
        snapshot = await EmailPreferenceService(db).update(
            user_id=payload.user_id,
            email=payload.email,
            marketing_emails=payload.marketing_emails,
            transactional_emails=payload.transactional_emails,
            unsubscribed_all=payload.unsubscribed_all,
        )
    except GrcServiceError as exc:
        raise_http(exc)
    return _to_response(snapshot)
