# backend/storefront/pricing.py
"""Order totals for the storefront checkout.

One function, ``compute_breakdown``, produces every number shown on the
checkout page and sent with the order, so the displayed total and the
submitted total always come from the same arithmetic. Values are dollars
kept at full float precision; rounding happens only when formatting.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from config import CheckoutConfig, PromoCode
from storefront.cart import Cart, format_money

# Card processing pass-through applied to small orders
SMALL_ORDER_FEE_RATE = 0.03
SMALL_ORDER_FEE_FIXED = 0.30


class PromoStatus(str, Enum):
    APPLIED = "applied"
    INVALID = "invalid"
    EMPTY = "empty"


@dataclass(frozen=True)
class ActivePromo:
    code: str  # as typed by the customer, uppercased
    type: str  # "flat" | "percent"
    value: float


@dataclass(frozen=True)
class PromoResult:
    status: PromoStatus
    promo: Optional[ActivePromo] = None

    @property
    def message(self) -> str:
        if self.status is PromoStatus.EMPTY:
            return "Please enter a code."
        if self.status is PromoStatus.INVALID:
            return "Invalid promo code."
        return f"Code {self.promo.code} applied!"


def resolve_promo(raw_code: Optional[str], promo_codes: Dict[str, PromoCode]) -> PromoResult:
    code = (raw_code or "").strip()
    if not code:
        return PromoResult(PromoStatus.EMPTY)

    promo = promo_codes.get(code.lower())
    if promo is None:
        return PromoResult(PromoStatus.INVALID)
    return PromoResult(PromoStatus.APPLIED, ActivePromo(code=code.upper(), type=promo.type, value=float(promo.value)))


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: float
    discount: float
    taxable_subtotal: float
    tax: float
    fee: float
    total: float

    def display(self) -> Dict[str, str]:
        return {
            "subtotal": format_money(self.subtotal),
            "discount": "-" + format_money(self.discount) if self.discount > 0 else "",
            "tax": format_money(self.tax),
            "fee": format_money(self.fee) if self.fee > 0 else "",
            "total": format_money(self.total),
        }


def compute_discount(subtotal: float, promo: Optional[ActivePromo]) -> float:
    if promo is None or subtotal <= 0:
        return 0.0
    if promo.type == "flat":
        discount = promo.value
    elif promo.type == "percent":
        discount = subtotal * (promo.value / 100)
    else:
        discount = 0.0
    return min(max(discount, 0.0), subtotal)


def compute_fee(taxable_subtotal: float, tax: float, threshold: float) -> float:
    if 0 < taxable_subtotal < threshold:
        return (taxable_subtotal + tax) * SMALL_ORDER_FEE_RATE + SMALL_ORDER_FEE_FIXED
    return 0.0


def compute_breakdown(cart: Cart, promo: Optional[ActivePromo], config: CheckoutConfig) -> PriceBreakdown:
    subtotal = cart.total_cents() / 100
    discount = compute_discount(subtotal, promo)
    taxable_subtotal = max(0.0, subtotal - discount)
    tax = taxable_subtotal * config.tax_rate
    fee = compute_fee(taxable_subtotal, tax, config.small_order_fee_threshold)
    total = taxable_subtotal + tax + fee

    return PriceBreakdown(
        subtotal=subtotal,
        discount=discount,
        taxable_subtotal=taxable_subtotal,
        tax=tax,
        fee=fee,
        total=total,
    )
