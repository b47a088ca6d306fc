"""Veryfi receipt OCR client."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

import httpx
from loguru import logger

from grc_api.core.settings import Settings, get_settings
from grc_api.services.errors import (
    PayloadTooLargeError,
    RateLimitedError,
    UpstreamError,
    UpstreamUnavailableError,
    ValidationFailed,
)


class VeryfiError(RuntimeError):
    """Raised when the Veryfi API cannot process a document."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class VeryfiAuthenticationError(VeryfiError):
    pass


class VeryfiTooLargeError(VeryfiError):
    pass


class VeryfiRateLimitedError(VeryfiError):
    pass


class VeryfiDuplicateError(VeryfiError):
    def __init__(self, message: str, *, duplicate_of: int | None = None, status_code: int | None = None) -> None:
        super().__init__(message, status_code=status_code)
        self.duplicate_of = duplicate_of


def to_service_error(exc: VeryfiError):
    """Translate a Veryfi failure into the error surfaced to members."""

    if isinstance(exc, VeryfiDuplicateError):
        return ValidationFailed("This receipt has already been submitted", code="duplicate_receipt")
    if isinstance(exc, VeryfiAuthenticationError):
        return UpstreamUnavailableError("Receipt processing service unavailable")
    if isinstance(exc, VeryfiTooLargeError):
        return PayloadTooLargeError("Image file too large (max 20MB)")
    if isinstance(exc, VeryfiRateLimitedError):
        return RateLimitedError("Rate limit exceeded. Please try again later.", retry_after_seconds=60)
    return UpstreamError("Failed to process receipt")


@dataclass(slots=True)
class VeryfiResult:
    document_id: int | None
    vendor_name: str | None
    raw_vendor_name: str | None
    total: Decimal | None
    subtotal: Decimal | None
    tax: Decimal | None
    receipt_date: date | None
    currency_code: str = "USD"
    is_duplicate: bool = False
    duplicate_of: int | None = None
    line_items: list[dict[str, Any]] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)


def _decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _parse_date(value: Any) -> date | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_document(payload: Mapping[str, Any]) -> VeryfiResult:
    vendor = payload.get("vendor") if isinstance(payload.get("vendor"), Mapping) else {}
    return VeryfiResult(
        document_id=payload.get("id"),
        vendor_name=vendor.get("name"),
        raw_vendor_name=vendor.get("raw_name"),
        total=_decimal(payload.get("total")),
        subtotal=_decimal(payload.get("subtotal")),
        tax=_decimal(payload.get("tax")),
        receipt_date=_parse_date(payload.get("date")),
        currency_code=payload.get("currency_code") or "USD",
        is_duplicate=bool(payload.get("is_duplicate")),
        duplicate_of=payload.get("duplicate_of"),
        line_items=list(payload.get("line_items") or []),
        raw=dict(payload),
    )


def _error_body(response: httpx.Response) -> tuple[str, Mapping[str, Any]]:
    text = response.text or ""
    try:
        parsed = response.json()
    except ValueError:
        parsed = {}
    return text, parsed if isinstance(parsed, Mapping) else {}


def _raise_for_response(response: httpx.Response) -> None:
    if response.is_success:
        return
    text, body = _error_body(response)
    logger.warning("Veryfi API error", status_code=response.status_code, body=text[:500])

    messages = [text, str(body.get("error") or ""), str(body.get("message") or "")]
    if body.get("is_duplicate") or any("duplicate" in message.lower() for message in messages):
        raise VeryfiDuplicateError(
            "This receipt has already been uploaded (duplicate detected)",
            duplicate_of=body.get("duplicate_of"),
            status_code=response.status_code,
        )
    if response.status_code in (401, 403):
        raise VeryfiAuthenticationError("Veryfi authentication failed", status_code=response.status_code)
    if response.status_code == 413:
        raise VeryfiTooLargeError("Image file too large (max 20MB)", status_code=413)
    if response.status_code == 429:
        raise VeryfiRateLimitedError("Rate limit exceeded. Please try again later.", status_code=429)
    raise VeryfiError(f"Veryfi API error: {response.status_code}", status_code=response.status_code)


class VeryfiClient:
    """Thin async wrapper over the Veryfi partner documents API."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._http_client = http_client

    @property
    def documents_url(self) -> str:
        return f"{self._settings.veryfi_base_url.rstrip('/')}/documents"

    def _headers(self) -> dict[str, str]:
        config = self._settings
        if not (config.veryfi_client_id and config.veryfi_username and config.veryfi_api_key):
            raise VeryfiAuthenticationError("Veryfi API credentials not configured")
        return {
            "Accept": "application/json",
            "Client-Id": config.veryfi_client_id,
            "Authorization": f"apikey {config.veryfi_username}:{config.veryfi_api_key}",
        }

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = self._headers()
        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=self._settings.veryfi_timeout_seconds)
            close_client = True
        try:
            return await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Veryfi request failed", method=method, error=str(exc))
            raise VeryfiError(f"Veryfi request failed: {exc}") from exc
        finally:
            if close_client:
                await client.aclose()

    async def process_document(self, base64_data: str, *, file_name: str = "receipt.jpg") -> VeryfiResult:
        response = await self._request(
            "POST",
            self.documents_url,
            json={"file_data": base64_data, "file_name": file_name},
        )
        _raise_for_response(response)
        result = parse_document(response.json())
        if result.is_duplicate:
            raise VeryfiDuplicateError(
                "This receipt has already been uploaded (duplicate detected)",
                duplicate_of=result.duplicate_of,
            )
        logger.info(
            "Veryfi document processed",
            document_id=result.document_id,
            vendor=result.vendor_name,
            total=str(result.total) if result.total is not None else None,
        )
        return result

