"""Certificate domain rules: pricing, store matching, images and merchant profiles."""

from .calendar import current_period, ensure_aware, is_before_period, period_of, utcnow  # noqa: F401
from .merchant_profile import (  # noqa: F401
    CompletionResult,
    SectionCompletion,
    calculate_completion,
    is_valid_vimeo_url,
    slugify,
    strip_phone_number,
)
from .pricing import (  # noqa: F401
    GRC_PRICING,
    MONTHLY_RECEIPT_THRESHOLD,
    MONTHLY_REWARD_AMOUNT,
    REVIEW_BONUS_MIN_WORDS,
    TRIAL_DENOMINATIONS,
    TRIAL_GRC_DENOMINATION,
    TRIAL_GRC_QUANTITY,
    OrderLine,
    PricingError,
    cost_per_cert,
    count_words,
    is_valid_denomination,
    months_for_denomination,
    review_earns_bonus,
    validate_order,
)
from .receipt_images import ReceiptImage, ReceiptImageError, ReceiptImageTooLarge, parse_receipt_image  # noqa: F401
from .store_matching import normalize_store_name, store_names_match  # noqa: F401
