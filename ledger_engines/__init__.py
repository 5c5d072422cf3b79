"""
Module: ledger_engines
Responsibility:
    Pure calculators used by the posting services: discounts, the
    weighted-average stock position, and the paid/remaining payment split.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel (domain values, db.types, exceptions,
    logging).  MUST NOT import ledger_services or ledger_config.

Invariants enforced:
    - Decimal-only arithmetic; floats never enter an engine.
    - Determinism: identical inputs always produce identical outputs.
    - Engines never read the clock or the database.
"""

from ledger_engines.discount import DiscountResult, calculate_discount, calculate_item_total
from ledger_engines.payment_split import PaymentSplit, split_payment
from ledger_engines.valuation import StockPosition

__all__ = [
    "DiscountResult",
    "calculate_discount",
    "calculate_item_total",
    "PaymentSplit",
    "split_payment",
    "StockPosition",
]
