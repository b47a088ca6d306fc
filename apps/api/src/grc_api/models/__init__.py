"""SQLAlchemy models package."""

from .auth_identity import MagicLinkToken  # noqa: F401
from .campaign import (  # noqa: F401
    CampaignRecipient,
    CampaignRecipientStatusEnum,
    CampaignStatusEnum,
    EmailCampaign,
    RecipientListEnum,
    RecipientTypeEnum,
)
from .grc import Grc, GrcPurchase, GrcStatusEnum, PaymentMethodEnum, PaymentStatusEnum  # noqa: F401
from .member import Member, MemberGrcQueue  # noqa: F401
from .merchant import Category, Merchant, MerchantBankAccount, MerchantInvite  # noqa: F401
from .qualification import MonthlyQualification, QualificationStatusEnum  # noqa: F401
from .receipt import Receipt, ReceiptStatusEnum  # noqa: F401
from .survey import Review, Survey, SurveyResponse  # noqa: F401
from .user import EmailPreference, User, UserRoleEnum  # noqa: F401
