"""
ledger_engines.payment_split -- Paid / remaining split of a nominal total.

Invariants enforced:
    - paid defaults to the whole total.
    - 0 <= paid <= total, and paid + remaining == total exactly.
"""

from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.db.types import ZERO
from ledger_kernel.exceptions import PaidAmountOutOfRangeError


@dataclass(frozen=True, slots=True)
class PaymentSplit:
    total: Decimal
    paid: Decimal
    remaining: Decimal

    @property
    def is_partial(self) -> bool:
        return self.remaining > ZERO


def split_payment(total: Decimal, paid: Decimal | None = None) -> PaymentSplit:
    """
    Split ``total`` into the amount paid now and the amount still owed.

    Raises:
        PaidAmountOutOfRangeError: If paid is negative or exceeds total.
    """
    paid_amount = total if paid is None else paid
    if paid_amount < 0 or paid_amount > total:
        raise PaidAmountOutOfRangeError(paid_amount=paid_amount, total_amount=total)
    return PaymentSplit(total=total, paid=paid_amount, remaining=total - paid_amount)
