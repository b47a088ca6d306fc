"""Background scheduler for qualification forfeiture and certificate expiry."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from grc_api.domain.grc import utcnow

from .lifecycle import QualificationService


@dataclass(slots=True)
class LifecycleSweepResult:
    forfeited: int
    expired: int


class GrcLifecycleScheduler:
    """Run the lifecycle sweep on a configurable interval."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        *,
        interval_seconds: int,
        claim_expiry_days: int,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.claim_expiry_days = claim_expiry_days
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False
        self.last_result: LifecycleSweepResult | None = None
        self.last_run_at: datetime | None = None

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info(
            "GRC lifecycle scheduler started",
            interval_seconds=self.interval_seconds,
            claim_expiry_days=self.claim_expiry_days,
        )

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("GRC lifecycle scheduler stopped")

    async def dispatch_once(self) -> LifecycleSweepResult:
        async with self._session_factory() as session:  # type: ignore[attr-defined]
            service = QualificationService(session)
            forfeited = await service.forfeit_elapsed_months()
            expired = await service.expire_unclaimed_grcs(max_age_days=self.claim_expiry_days)
            await session.commit()
        self.last_result = LifecycleSweepResult(forfeited=forfeited, expired=expired)
        self.last_run_at = utcnow()
        return self.last_result

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.dispatch_once()
            except Exception as exc:  # pragma: no cover
                logger.exception("GRC lifecycle sweep failed", error=str(exc))

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
