"""Month arithmetic shared by qualification bookkeeping."""

from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    # SQLite returns naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def month_key(month: int, year: int) -> int:
    return year * 12 + (month - 1)


def current_period(now: datetime | None = None) -> tuple[int, int]:
    moment = now or utcnow()
    return moment.month, moment.year


def period_of(value: date | datetime) -> tuple[int, int]:
    return value.month, value.year


def is_before_period(month: int, year: int, *, reference: tuple[int, int]) -> bool:
    ref_month, ref_year = reference
    return month_key(month, year) < month_key(ref_month, ref_year)
