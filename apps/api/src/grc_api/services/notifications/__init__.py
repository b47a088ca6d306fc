"""Notification service package."""

from .backend import EmailBackend, InMemoryEmailBackend, SMTPEmailBackend
from .campaigns import CampaignDraft, CampaignService, EmailPreferenceService, PreferenceSnapshot, RecipientPage
from .postmark import BroadcastRecipient, BroadcastResult, DeliveryOutcome, PostmarkBroadcastClient
from .service import NotificationEvent, NotificationService
from .templates import RenderedTemplate

__all__ = [
    "EmailBackend",
    "SMTPEmailBackend",
    "InMemoryEmailBackend",
    "NotificationService",
    "NotificationEvent",
    "RenderedTemplate",
    "BroadcastRecipient",
    "BroadcastResult",
    "DeliveryOutcome",
    "PostmarkBroadcastClient",
    "CampaignDraft",
    "CampaignService",
    "EmailPreferenceService",
    "PreferenceSnapshot",
    "RecipientPage",
]
