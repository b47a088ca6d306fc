"""Member survey submissions."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.api.dependencies.services import get_notification_service
from grc_api.api.dependencies.session import require_member
from grc_api.api.errors import raise_http
from grc_api.db.session import get_session
from grc_api.models import Member
from grc_api.schemas.grc import QualificationResponse
from grc_api.services.errors import GrcServiceError
from grc_api.services.merchants import SurveyService
from grc_api.services.notifications import NotificationService

router = APIRouter(prefix="/survey", tags=["Surveys"])


class SurveyRespondRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    survey_id: UUID = Field(..., alias="surveyId")
    grc_id: UUID = Field(..., alias="grcId")
    answers: dict[str, Any]
    is_registration: bool = Field(False, alias="isRegistration")
    month: int | None = Field(None, ge=1, le=12)
    year: int | None = Field(None, ge=2024, le=2100)


class SurveyRespondResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    response_id: UUID = Field(..., alias="responseId")
    qualification: QualificationResponse | None = None
    grc_completed: bool = Field(False, alias="grcCompleted")


@router.post("/respond", response_model=SurveyRespondResponse, status_code=status.HTTP_201_CREATED)
async def respond_to_survey(
    payload: SurveyRespondRequest,
    member: Member = Depends(require_member),
    db: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service),
) -> SurveyRespondResponse:
    service = SurveyService(db, notification_service=notifications)
    try:
        submission = await service.respond(
            member,
            survey_id=payload.survey_id,
            grc_id=payload.grc_id,
            answers=payload.answers,
            is_registration=payload.is_registration,
            month=payload.month,
            year=payload.year,
        )
    except GrcServiceError as exc:
        raise_http(exc)
    update = submission.qualification
    return SurveyRespondResponse(
        success=True,
        response_id=submission.response.id,
        qualification=(
            QualificationResponse.model_validate(update.qualification) if update is not None else None
        ),
        grc_completed=update.grc_completed if update is not None else False,
    )
