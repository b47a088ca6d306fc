"""Receipt upload and review services."""

from .moderation import BulkReviewResult, ReceiptModerationService, ReceiptPage, ReceiptReviewRow, ReviewOutcome
from .storage import ReceiptImageStorage, StoredReceiptImage
from .submission import ReceiptChecks, ReceiptSubmissionService, ReceiptUpload, SubmissionOutcome, evaluate_receipt
from .veryfi import (
    VeryfiAuthenticationError,
    VeryfiClient,
    VeryfiDuplicateError,
    VeryfiError,
    VeryfiRateLimitedError,
    VeryfiResult,
    VeryfiTooLargeError,
)

__all__ = [
    "BulkReviewResult",
    "ReceiptChecks",
    "ReceiptImageStorage",
    "ReceiptModerationService",
    "ReceiptPage",
    "ReceiptReviewRow",
    "ReceiptSubmissionService",
    "ReceiptUpload",
    "ReviewOutcome",
    "StoredReceiptImage",
    "SubmissionOutcome",
    "VeryfiAuthenticationError",
    "VeryfiClient",
    "VeryfiDuplicateError",
    "VeryfiError",
    "VeryfiRateLimitedError",
    "VeryfiResult",
    "VeryfiTooLargeError",
    "evaluate_receipt",
]
