"""Merchant-facing services."""

from .dashboard import MerchantDashboard, MerchantDashboardService  # noqa: F401
from .onboarding import (  # noqa: F401
    CreatedInvite,
    InviteStats,
    MerchantEmailUnavailable,
    MerchantOnboardingService,
    OnboardingRequest,
    OnboardingResult,
    invite_status,
)
from .profile import MerchantProfileService, MerchantProfileView, PublicMerchantView, unique_slug  # noqa: F401
from .reviews import ReviewService  # noqa: F401
from .surveys import SurveyService, SurveySubmission, SurveySummary, validate_questions  # noqa: F401
