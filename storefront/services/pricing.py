"""Checkout price computation shared by preview and confirm.

Everything here is pure: the same inputs always produce the same breakdown,
which is what lets ``confirm`` re-derive exactly what ``preview`` showed.
Amounts are whole VND; rates are ``Decimal`` and rounding is half-up.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from storefront.core.config import settings
from storefront.schemas.checkout import PricingBreakdown
from storefront.services.loyalty_service import Redemption, compute_redemption

_ONE = Decimal("1")


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def compute_tax(subtotal: int, rate: Decimal | None = None) -> int:
    rate = settings.CHECKOUT_TAX_RATE if rate is None else rate
    return round_half_up(Decimal(subtotal) * rate)


def compute_shipping(subtotal: int, fee: int | None = None, free_threshold: int | None = None) -> int:
    fee = settings.CHECKOUT_SHIPPING_FEE if fee is None else fee
    free_threshold = settings.CHECKOUT_FREE_SHIPPING_THRESHOLD if free_threshold is None else free_threshold
    if subtotal <= 0 or subtotal >= free_threshold:
        return 0
    return fee


def compute_discount(subtotal: int, discount_percent: int) -> int:
    if discount_percent <= 0:
        return 0
    return round_half_up(Decimal(subtotal) * Decimal(discount_percent) / Decimal(100))


@dataclass(frozen=True)
class PriceQuote:
    breakdown: PricingBreakdown
    redemption: Redemption


def quote(
    subtotal: int,
    *,
    discount_percent: int = 0,
    requested_points: int = 0,
    points_balance: int = 0,
    tax_rate: Decimal | None = None,
    shipping_fee: int | None = None,
    free_shipping_threshold: int | None = None,
    cap_ratio: Decimal | None = None,
) -> PriceQuote:
    """Price a cart subtotal.

    Order of operations: tax on the subtotal, shipping, coupon discount on the
    subtotal, then loyalty points. Points never pay more than what is still
    due after the discount, so the final clamp to zero cannot swallow points.
    """
    if subtotal < 0:
        raise ValueError("subtotal must not be negative")

    tax = compute_tax(subtotal, tax_rate)
    shipping = compute_shipping(subtotal, shipping_fee, free_shipping_threshold)
    discount = compute_discount(subtotal, discount_percent)
    payable = max(0, subtotal + tax + shipping - discount)

    redemption = compute_redemption(
        subtotal,
        requested_points,
        points_balance,
        cap_ratio=cap_ratio,
        payable=payable,
    )
    total = max(0, payable - redemption.applied_points)

    breakdown = PricingBreakdown(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        discount=discount,
        loyalty_applied=redemption.applied_points,
        total=total,
    )
    return PriceQuote(breakdown=breakdown, redemption=redemption)
