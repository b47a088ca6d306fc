from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.core.settings import settings
from grc_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")
    last_success_at: str | None = Field(default=None, description="ISO timestamp of most recent success")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/health/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        status = "error"
        components["database"] = ComponentStatus(
            status="error",
            detail=f"Database unreachable ({error.__class__.__name__})",
            last_error_at=datetime.now(timezone.utc).isoformat(),
        )
    else:
        components["database"] = ComponentStatus(status="ready")

    scheduler = getattr(request.app.state, "grc_lifecycle_scheduler", None)
    if settings.qualification_scheduler_enabled and scheduler is not None:
        running = bool(getattr(scheduler, "is_running", False))
        scheduler_status: Literal["ready", "starting", "disabled", "error"] = "ready" if running else "starting"
        detail = None if running else "Lifecycle scheduler not running"
        last_success_at = None
        last_result = getattr(scheduler, "last_result", None)
        if last_result is not None:
            detail = f"Last sweep forfeited {last_result.forfeited} months and expired {last_result.expired} GRCs"
        last_run_at = getattr(scheduler, "last_run_at", None)
        if last_run_at is not None:
            last_success_at = last_run_at.isoformat()
        if not running:
            status = "degraded" if status != "error" else status
        components["lifecycle_scheduler"] = ComponentStatus(
            status=scheduler_status,
            detail=detail,
            last_success_at=last_success_at,
        )
    else:
        components["lifecycle_scheduler"] = ComponentStatus(
            status="disabled",
            detail="Lifecycle scheduler disabled via settings",
        )

    if (settings.receipt_storage_bucket or "").strip():
        components["receipt_storage"] = ComponentStatus(
            status="ready",
            detail=f"Bucket {settings.receipt_storage_bucket} configured",
        )
    else:
        components["receipt_storage"] = ComponentStatus(
            status="disabled",
            detail="Receipt storage bucket not configured",
        )

    veryfi_configured = bool(settings.veryfi_client_id and settings.veryfi_username and settings.veryfi_api_key)
    components["receipt_ocr"] = ComponentStatus(
        status="ready" if veryfi_configured else "disabled",
        detail=None if veryfi_configured else "Veryfi credentials not configured",
    )

    return ReadinessPayload(status=status, components=components)
