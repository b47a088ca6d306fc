"""Admin back-office services."""

from .analytics import AnalyticsReport, AnalyticsService, Metric, percent_change, window_for  # noqa: F401
from .catalog import CategoryService, MerchantAdminService, MerchantSummary  # noqa: F401
from .dashboard import ActivityItem, AdminDashboard, AdminDashboardService  # noqa: F401
from .gift_cards import BulkGiftCardResult, GiftCardPage, GiftCardRow, GiftCardService, GiftCardStats  # noqa: F401
from .merchant_pages import MerchantPageList, MerchantPageRow, MerchantPageService  # noqa: F401
from .orders import OrderReviewService  # noqa: F401
from .users import UserAdminService, UserDetail, UserList, UserRow, UserStats  # noqa: F401
