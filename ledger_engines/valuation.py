"""
ledger_engines.valuation -- Weighted-average stock position.

Responsibility:
    The two stock transitions of an inventory item as pure value
    arithmetic.  The stateful side (row locks, conditional UPDATEs, movement
    rows) lives in ledger_services.inventory_valuation.

Invariants enforced:
    - PURCHASE: new_quantity = q0 + q and
      new_cost = (q0 x c0 + q x p) / new_quantity (p when new_quantity is 0),
      rounded to cost precision.
    - CONSUMPTION: quantity never goes below zero.  Asking for more than is
      on hand raises and leaves the position untouched.

Failure modes:
    - InsufficientStockError (available / requested) from consume().
    - ValueError on non-positive quantities or a negative price.

Weighted averaging needs no lot history and gives the same average for any
interleaving of purchases; per-lot cost precision is not kept.
"""

from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.db.types import COST_DECIMAL_PLACES, round_money
from ledger_kernel.exceptions import InsufficientStockError
from ledger_engines.tracer import traced_engine


@dataclass(frozen=True, slots=True)
class StockPosition:
    """Quantity on hand (base units) and weighted-average cost per base unit."""

    quantity: Decimal
    cost_per_unit: Decimal

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(f"Stock quantity cannot be negative, got {self.quantity}")
        if self.cost_per_unit < 0:
            raise ValueError(f"Unit cost cannot be negative, got {self.cost_per_unit}")

    @property
    def value(self) -> Decimal:
        return self.quantity * self.cost_per_unit

    @traced_engine("stock_purchase", "1.0", fingerprint_fields=("quantity", "unit_price"))
    def purchase(
        self,
        quantity: Decimal,
        unit_price: Decimal,
        cost_decimal_places: int = COST_DECIMAL_PLACES,
    ) -> "StockPosition":
        if quantity <= 0:
            raise ValueError(f"Purchase quantity must be positive, got {quantity}")
        if unit_price < 0:
            raise ValueError(f"Unit price cannot be negative, got {unit_price}")

        new_quantity = self.quantity + quantity
        if new_quantity > 0:
            new_cost = (self.quantity * self.cost_per_unit + quantity * unit_price) / new_quantity
        else:
            new_cost = unit_price

        return StockPosition(
            quantity=new_quantity,
            cost_per_unit=round_money(new_cost, cost_decimal_places),
        )

    def can_consume(self, quantity: Decimal) -> bool:
        return quantity <= self.quantity

    @traced_engine("stock_consumption", "1.0", fingerprint_fields=("quantity",))
    def consume(self, quantity: Decimal, item_id: object = None) -> "StockPosition":
        if quantity <= 0:
            raise ValueError(f"Consumption quantity must be positive, got {quantity}")
        if not self.can_consume(quantity):
            raise InsufficientStockError(
                inventory_item_id=str(item_id) if item_id is not None else "",
                available=self.quantity,
                requested=quantity,
            )
        return StockPosition(quantity=self.quantity - quantity, cost_per_unit=self.cost_per_unit)
