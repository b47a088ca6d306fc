"""Certificate lifecycle services."""

from .dashboard import MemberDashboard, MemberDashboardService
from .inventory import BankDetails, InventoryRow, InventoryService, InventorySnapshot
from .issuance import BulkIssueResult, ClaimInfo, GrcIssuanceService, IssueRequest
from .lifecycle import QualificationService, QualificationUpdate
from .registration import (
    GrcRegistrationInput,
    GrcRegistrationService,
    MemberGrcListing,
    MemberProfileInput,
    RegistrationOutcome,
)
from .scheduler import GrcLifecycleScheduler, LifecycleSweepResult

__all__ = [
    "BankDetails",
    "BulkIssueResult",
    "ClaimInfo",
    "GrcIssuanceService",
    "GrcLifecycleScheduler",
    "GrcRegistrationInput",
    "GrcRegistrationService",
    "InventoryRow",
    "InventoryService",
    "InventorySnapshot",
    "IssueRequest",
    "LifecycleSweepResult",
    "MemberDashboard",
    "MemberDashboardService",
    "MemberGrcListing",
    "MemberProfileInput",
    "QualificationService",
    "QualificationUpdate",
    "RegistrationOutcome",
]
