"""Certificate pricing, order validation and reward constants."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

GRC_PRICING: Mapping[int, Decimal] = {
    denomination: Decimal("1.25") + Decimal("0.25") * index
    for index, denomination in enumerate(range(50, 501, 25))
}

MIN_DENOMINATION = 50
MAX_DENOMINATION = 500
DENOMINATION_STEP = 25

MONTHLY_RECEIPT_THRESHOLD = Decimal("100")
MONTHLY_REWARD_AMOUNT = Decimal("25")
REVIEW_BONUS_MIN_WORDS = 50

MIN_LINE_QUANTITY = 1
MAX_LINE_QUANTITY = 1000
MIN_ORDER_QUANTITY = 50

TRIAL_GRC_QUANTITY = 10
TRIAL_GRC_DENOMINATION = 100
TRIAL_DENOMINATIONS = (25, 50, 75, 100)

ORDERABLE_PAYMENT_METHODS = ("zelle", "business_check")


class PricingError(ValueError):
    """Raised when an order or denomination violates pricing rules."""


@dataclass(frozen=True, slots=True)
class OrderLine:
    denomination: int
    quantity: int

    @property
    def cost_per_cert(self) -> Decimal:
        return cost_per_cert(self.denomination)

    @property
    def total_cost(self) -> Decimal:
        return self.cost_per_cert * self.quantity


def is_valid_denomination(denomination: int) -> bool:
    return denomination in GRC_PRICING


def cost_per_cert(denomination: int) -> Decimal:
    try:
        return GRC_PRICING[denomination]
    except KeyError as exc:
        raise PricingError(f"Invalid denomination: {denomination}") from exc


def months_for_denomination(denomination: int) -> int:
    """Number of qualifying months a certificate is worth ($25 per month)."""

    return denomination // int(MONTHLY_REWARD_AMOUNT)


def trial_cost_per_cert(denomination: int) -> Decimal:
    # Trial denominations below the price list are billed at the lowest tier.
    return GRC_PRICING.get(denomination, GRC_PRICING[MIN_DENOMINATION])


def validate_order(lines: Iterable[OrderLine], payment_method: str) -> list[OrderLine]:
    """Check an inventory order and return its lines.

    Every line must name a priced denomination with a quantity between 1 and
    1000, the order as a whole must contain at least 50 certificates, and it
    must be paid by Zelle or business check.
    """

    validated = list(lines)
    if not validated:
        raise PricingError("At least one line item is required")
    if payment_method not in ORDERABLE_PAYMENT_METHODS:
        raise PricingError("Payment method must be zelle or business_check")

    for line in validated:
        if not is_valid_denomination(line.denomination):
            raise PricingError(f"Invalid denomination: {line.denomination}")
        if not MIN_LINE_QUANTITY <= line.quantity <= MAX_LINE_QUANTITY:
            raise PricingError(
                f"Quantity must be between {MIN_LINE_QUANTITY} and {MAX_LINE_QUANTITY}"
            )

    total_quantity = sum(line.quantity for line in validated)
    if total_quantity < MIN_ORDER_QUANTITY:
        raise PricingError(f"Minimum order is {MIN_ORDER_QUANTITY} certificates")
    return validated


def count_words(content: str | None) -> int:
    if not content:
        return 0
    return len(content.split())


def review_earns_bonus(content: str | None) -> bool:
    return count_words(content) >= REVIEW_BONUS_MIN_WORDS
