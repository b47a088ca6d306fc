"""Merchant surveys and member survey responses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import current_period, utcnow
from grc_api.models import Grc, GrcStatusEnum, Member, Survey, SurveyResponse
from grc_api.services.errors import NotFoundError, ValidationFailed
from grc_api.services.grc.lifecycle import QualificationService, QualificationUpdate
from grc_api.services.notifications import NotificationService

QUESTION_TYPES = ("text", "multiple_choice")


@dataclass(slots=True)
class SurveySummary:
    survey: Survey
    response_count: int


@dataclass(slots=True)
class SurveySubmission:
    response: SurveyResponse
    qualification: QualificationUpdate | None


def validate_questions(questions: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    if not questions:
        raise ValidationFailed("At least one question is required")
    cleaned: list[dict[str, Any]] = []
    seen: set[str] = set()
    for index, question in enumerate(questions):
        question_id = str(question.get("id") or f"q{index + 1}")
        text = str(question.get("text") or "").strip()
        kind = question.get("type") or "text"
        options = [str(option).strip() for option in (question.get("options") or []) if str(option).strip()]
        if not text:
            raise ValidationFailed(f"Question {index + 1} needs text")
        if kind not in QUESTION_TYPES:
            raise ValidationFailed(f"Question {index + 1} has unsupported type {kind!r}")
        if kind == "multiple_choice" and len(options) < 2:
            raise ValidationFailed(f"Question {index + 1} needs at least two options")
        if question_id in seen:
            raise ValidationFailed(f"Duplicate question id {question_id!r}")
        seen.add(question_id)
        cleaned.append(
            {
                "id": question_id,
                "text": text,
                "type": kind,
                "options": options if kind == "multiple_choice" else [],
                "required": bool(question.get("required", False)),
            }
        )
    return cleaned


class SurveyService:
    def __init__(
        self,
        db_session: AsyncSession,
        *,
        notification_service: NotificationService | None = None,
    ) -> None:
        self._db = db_session
        self._qualifications = QualificationService(db_session, notification_service=notification_service)

    async def _deactivate_others(self, merchant_id: UUID, keep_id: UUID | None) -> None:
        stmt = update(Survey).where(Survey.merchant_id == merchant_id, Survey.is_active.is_(True))
        if keep_id is not None:
            stmt = stmt.where(Survey.id != keep_id)
        await self._db.execute(stmt.values(is_active=False).execution_options(synchronize_session="fetch"))

    async def create(
        self,
        merchant_id: UUID,
        *,
        title: str,
        questions: Sequence[Mapping[str, Any]],
        is_active: bool = True,
    ) -> Survey:
        if not title.strip():
            raise ValidationFailed("Title is required")
        survey = Survey(
            merchant_id=merchant_id,
            title=title.strip(),
            questions=validate_questions(questions),
            is_active=is_active,
            created_at=utcnow(),
        )
        self._db.add(survey)
        await self._db.flush()
        if is_active:
            await self._deactivate_others(merchant_id, survey.id)
        await self._db.commit()
        await self._db.refresh(survey)
        logger.info("Survey created", survey_id=str(survey.id), merchant_id=str(merchant_id))
        return survey

    async def get(self, merchant_id: UUID, survey_id: UUID) -> Survey:
        survey = await self._db.get(Survey, survey_id)
        if survey is None or survey.merchant_id != merchant_id:
            raise NotFoundError("Survey not found")
        return survey

    async def list_with_counts(self, merchant_id: UUID) -> list[SurveySummary]:
        stmt = (
            select(Survey, func.count(SurveyResponse.id))
            .outerjoin(SurveyResponse, SurveyResponse.survey_id == Survey.id)
            .where(Survey.merchant_id == merchant_id)
            .group_by(Survey.id)
            .order_by(Survey.created_at.desc())
        )
        return [SurveySummary(survey=row[0], response_count=int(row[1] or 0)) for row in (await self._db.execute(stmt)).all()]

    async def update(
        self,
        merchant_id: UUID,
        survey_id: UUID,
        *,
        title: str | None = None,
        questions: Sequence[Mapping[str, Any]] | None = None,
        is_active: bool | None = None,
    ) -> Survey:
        survey = await self.get(merchant_id, survey_id)
        if title is not None:
            if not title.strip():
                raise ValidationFailed("Title is required")
            survey.title = title.strip()
        if questions is not None:
            survey.questions = validate_questions(questions)
        if is_active is not None:
            survey.is_active = is_active
            if is_active:
                await self._deactivate_others(merchant_id, survey.id)
        await self._db.commit()
        await self._db.refresh(survey)
        return survey

    async def list_responses(self, merchant_id: UUID, survey_id: UUID) -> list[tuple[SurveyResponse, Member]]:
        await self.get(merchant_id, survey_id)
        stmt = (
            select(SurveyResponse, Member)
            .join(Member, Member.id == SurveyResponse.member_id)
            .where(SurveyResponse.survey_id == survey_id)
            .order_by(SurveyResponse.completed_at.desc())
        )
        return [(row[0], row[1]) for row in (await self._db.execute(stmt)).all()]

    async def respond(
        self,
        member: Member,
        *,
        survey_id: UUID,
        grc_id: UUID,
        answers: Mapping[str, Any],
        is_registration: bool = False,
        month: int | None = None,
        year: int | None = None,
    ) -> SurveySubmission:
        """Store a survey response and, for monthly responses, mark the month's survey done."""

        survey = await self._db.get(Survey, survey_id)
        if survey is None:
            raise NotFoundError("Survey not found")
        grc = await self._db.get(Grc, grc_id)
        if grc is None or grc.member_id != member.id:
            raise NotFoundError("GRC not found")
        if grc.merchant_id != survey.merchant_id:
            raise ValidationFailed("Survey does not belong to this GRC's merchant")

        missing = [
            question["id"]
            for question in survey.questions or []
            if question.get("required") and not str(answers.get(question["id"], "")).strip()
        ]
        if missing:
            raise ValidationFailed(f"Missing answers for required questions: {', '.join(missing)}")

        now = utcnow()
        if is_registration:
            response = SurveyResponse(
                survey_id=survey.id,
                member_id=member.id,
                grc_id=grc.id,
                month=None,
                year=None,
                answers=dict(answers),
                completed_at=now,
            )
            self._db.add(response)
            await self._db.commit()
            await self._db.refresh(response)
            return SurveySubmission(response=response, qualification=None)

        if grc.status != GrcStatusEnum.ACTIVE:
            raise ValidationFailed("GRC is not active")
        default_month, default_year = current_period(now)
        month = month or default_month
        year = year or default_year

        existing_stmt = select(func.count(SurveyResponse.id)).where(
            SurveyResponse.member_id == member.id,
            SurveyResponse.grc_id == grc.id,
            SurveyResponse.month == month,
            SurveyResponse.year == year,
        )
        if int((await self._db.execute(existing_stmt)).scalar_one() or 0) > 0:
            raise ValidationFailed("Survey already completed for this month")

        response = SurveyResponse(
            survey_id=survey.id,
            member_id=member.id,
            grc_id=grc.id,
            month=month,
            year=year,
            answers=dict(answers),
            completed_at=now,
        )
        self._db.add(response)
        qualification = await self._qualifications.record_survey_completion(
            member_id=member.id,
            grc_id=grc.id,
            month=month,
            year=year,
            completed_at=now,
        )
        await self._db.commit()
        await self._db.refresh(response)
        logger.info(
            "Monthly survey completed",
            member_id=str(member.id),
            grc_id=str(grc.id),
            month=month,
            year=year,
            qualification_status=qualification.qualification.status.value,
        )
        return SurveySubmission(response=response, qualification=qualification)
