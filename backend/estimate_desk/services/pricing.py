# Overview: Pure estimate pricing (line totals, discount, loading, grand total).

"""
Estimate pricing rules

    line.total      = quantity * rate
    subtotal        = sum(line.total)
    discount_amount = subtotal * discount / 100   (discount_type="percentage")
                    = discount                    (discount_type="amount")
    total           = subtotal - discount_amount + loading_charges

All arithmetic is Decimal; money values are rounded half-up to 2 places at
each stored figure. total is NOT floored at zero: a flat discount larger than
the subtotal yields a negative total.

Nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from ..errors import ValidationError
from ..models import DISCOUNT_TYPES


CENTS = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricedLine:
    item_id: int
    quantity: Decimal
    rate: Decimal
    total: Decimal


@dataclass(frozen=True)
class EstimateTotals:
    lines: list[PricedLine] = field(default_factory=list)
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    discount_type: str = "percentage"
    discount_amount: Decimal = ZERO
    loading_charges: Decimal = ZERO
    total: Decimal = ZERO


def line_total(quantity: Decimal, rate: Decimal) -> Decimal:
    return quantize_money(Decimal(quantity) * Decimal(rate))


def discount_amount(subtotal: Decimal, discount: Decimal, discount_type: str) -> Decimal:
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(
            f"discount_type must be one of: {', '.join(DISCOUNT_TYPES)}", param="discount_type"
        )
    if discount_type == "percentage":
        return quantize_money(Decimal(subtotal) * Decimal(discount) / HUNDRED)
    return quantize_money(Decimal(discount))


def price_estimate(
    lines: list[tuple[int, Decimal, Decimal]],
    *,
    discount: Decimal = ZERO,
    discount_type: str = "percentage",
    loading_charges: Decimal = ZERO,
) -> EstimateTotals:
    """
    Price a full estimate.

    lines is a list of (item_id, quantity, rate). Totals are always computed
    from scratch; nothing is patched incrementally.
    """
    priced = []
    for item_id, qty, rate in lines:
        rate = quantize_money(rate)
        priced.append(PricedLine(item_id=item_id, quantity=Decimal(qty), rate=rate, total=line_total(qty, rate)))
    subtotal = quantize_money(sum((p.total for p in priced), ZERO))
    discount = Decimal(discount)
    loading_charges = quantize_money(loading_charges)
    amount = discount_amount(subtotal, discount, discount_type)
    total = quantize_money(subtotal - amount + loading_charges)

    return EstimateTotals(
        lines=priced,
        subtotal=subtotal,
        discount=quantize_money(discount),
        discount_type=discount_type,
        discount_amount=amount,
        loading_charges=loading_charges,
        total=total,
    )
