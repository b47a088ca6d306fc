"""Typed failures raised by service classes and translated by the API layer."""

from __future__ import annotations


class GrcServiceError(Exception):
    status_code = 400
    code = "invalid_request"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationFailed(GrcServiceError):
    status_code = 400
    code = "validation_failed"


class NotFoundError(GrcServiceError):
    status_code = 404
    code = "not_found"


class ConflictError(GrcServiceError):
    status_code = 409
    code = "conflict"


class GoneError(GrcServiceError):
    status_code = 410
    code = "gone"


class PayloadTooLargeError(GrcServiceError):
    status_code = 413
    code = "payload_too_large"


class RateLimitedError(GrcServiceError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, message: str, *, retry_after_seconds: int) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class UpstreamUnavailableError(GrcServiceError):
    status_code = 503
    code = "upstream_unavailable"


class UpstreamError(GrcServiceError):
    status_code = 500
    code = "upstream_error"
