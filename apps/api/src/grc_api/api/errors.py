"""Translate service-layer failures into HTTP responses."""

from __future__ import annotations

from typing import Any, NoReturn

from fastapi import HTTPException

from grc_api.services.errors import GrcServiceError, RateLimitedError


def raise_http(exc: GrcServiceError, *, include_code: bool = False) -> NoReturn:
    """Re-raise ``exc`` as an ``HTTPException``.

    With ``include_code`` the detail becomes ``{"message", "code"}`` so clients
    can branch on the failure kind.
    """

    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    detail: Any = {"message": exc.message, "code": exc.code} if include_code else exc.message
    raise HTTPException(status_code=exc.status_code, detail=detail, headers=headers) from exc
