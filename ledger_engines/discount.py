"""
ledger_engines.discount -- Line and transaction discount calculator.

Responsibility:
    Turn a subtotal plus an optional discount (percentage or fixed amount)
    into subtotal / discount_amount / total, rounded to money precision.

Invariants enforced:
    - No discount type or value => discount_amount = 0, total = subtotal.
    - PERCENTAGE => subtotal x value / 100; AMOUNT => value.
    - Clamp: discount_amount never exceeds subtotal, so total >= 0.
      An oversized discount is clamped, not rejected.

Failure modes:
    - ValueError on a negative subtotal, quantity, unit price or discount
      value.  Services validate caller input first and raise typed errors;
      reaching this is a programming error.
"""

from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.db.types import MONEY_DECIMAL_PLACES, ZERO, round_money
from ledger_kernel.domain.values import DiscountType
from ledger_engines.tracer import traced_engine

_HUNDRED = Decimal("100")


@dataclass(frozen=True, slots=True)
class DiscountResult:
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal


@traced_engine("discount", "1.0", fingerprint_fields=("subtotal", "discount_type", "discount_value"))
def calculate_discount(
    subtotal: Decimal,
    discount_type: DiscountType | None = None,
    discount_value: Decimal | None = None,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> DiscountResult:
    """
    Apply an optional discount to ``subtotal``.

    All three outputs are rounded to ``decimal_places`` and
    ``total == subtotal - discount_amount`` holds exactly.
    """
    if subtotal < 0:
        raise ValueError(f"subtotal must not be negative, got {subtotal}")

    subtotal = round_money(subtotal, decimal_places)

    if discount_type is None or discount_value is None:
        return DiscountResult(subtotal=subtotal, discount_amount=ZERO, total=subtotal)

    if discount_value < 0:
        raise ValueError(f"discount_value must not be negative, got {discount_value}")

    if DiscountType(discount_type) is DiscountType.PERCENTAGE:
        discount_amount = subtotal * discount_value / _HUNDRED
    else:
        discount_amount = discount_value

    discount_amount = min(round_money(discount_amount, decimal_places), subtotal)

    return DiscountResult(
        subtotal=subtotal,
        discount_amount=discount_amount,
        total=subtotal - discount_amount,
    )


def calculate_item_total(
    quantity: Decimal,
    unit_price: Decimal,
    discount_type: DiscountType | None = None,
    discount_value: Decimal | None = None,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> DiscountResult:
    """``calculate_discount`` applied to ``quantity x unit_price``."""
    if quantity < 0 or unit_price < 0:
        raise ValueError(
            f"quantity and unit_price must not be negative, got {quantity} x {unit_price}"
        )
    return calculate_discount(
        subtotal=quantity * unit_price,
        discount_type=discount_type,
        discount_value=discount_value,
        decimal_places=decimal_places,
    )
