"""
Module: ledger_services.inventory_valuation
Responsibility: Apply the stock side of a line item inside the posting's
    atomic unit: convert sub-units to base units, move the item's quantity
    and weighted-average cost, write the line item and append the movement.
Architecture position: Services.  Session-bound, flush-only.  The arithmetic
    comes from ledger_engines.valuation; this module owns the SQL.

Invariants enforced:
    - Stock never goes negative.  A consumption is a single conditional
      UPDATE (quantity >= requested), so two postings racing for the last
      units cannot both succeed.
    - A purchase reads the item under SELECT ... FOR UPDATE before blending
      the new cost in.
    - Every stock change appends exactly one InventoryMovement naming the
      transaction that caused it.
    - Items are only visible from their own branch and while not deleted.

Failure modes:
    - InventoryItemNotFoundError / SubUnitNotFoundError for unknown or
      foreign references.
    - InsufficientStockError when the on-hand quantity is too small; the
      item row is left untouched.
    - MissingUnitPriceError for a purchase without a unit price.

Audit relevance:
    The movement rows are the stock audit trail; line items record the
    quantity in the unit the caller used alongside the base quantity moved.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update

from ledger_engines.discount import DiscountResult
from ledger_engines.valuation import StockPosition
from ledger_kernel.db.types import COST_DECIMAL_PLACES, ZERO, round_money
from ledger_kernel.domain.dtos import LineItemInput
from ledger_kernel.domain.values import DiscountType, OperationType
from ledger_kernel.exceptions import (
    InsufficientStockError,
    InventoryItemNotFoundError,
    MissingUnitPriceError,
    SubUnitNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.inventory import InventoryItem, InventoryMovement, InventorySubUnit
from ledger_kernel.models.transaction import TransactionLineItem
from ledger_kernel.services.base import BaseService

logger = get_logger("services.inventory_valuation")


class InventoryValuationService(BaseService[InventoryItem]):
    """
    Stock transitions for one posting.

    Contract:
        Called by the posting orchestrator inside ``UnitOfWork.run`` after
        the transaction row has been flushed.

    Guarantees:
        - Flushes, never commits.
        - Quantities passed to the engine and stored on the item are in the
          item's base unit.

    Non-goals:
        - Lot tracking or FIFO costing.
    """

    def __init__(self, session, clock=None, cost_decimal_places: int = COST_DECIMAL_PLACES):
        super().__init__(session, clock)
        self.cost_decimal_places = cost_decimal_places

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _load_item(self, item_id: UUID, branch_id: UUID, for_update: bool = False) -> InventoryItem:
        stmt = select(InventoryItem).where(
            InventoryItem.id == item_id,
            InventoryItem.branch_id == branch_id,
            InventoryItem.deleted_at.is_(None),
        )
        if for_update:
            stmt = stmt.with_for_update()
        item = self.session.scalars(stmt).one_or_none()
        if item is None:
            raise InventoryItemNotFoundError(str(item_id), str(branch_id))
        return item

    def _load_sub_unit(self, sub_unit_id: UUID, item_id: UUID) -> InventorySubUnit:
        sub_unit = self.session.scalars(
            select(InventorySubUnit).where(
                InventorySubUnit.id == sub_unit_id,
                InventorySubUnit.inventory_item_id == item_id,
                InventorySubUnit.deleted_at.is_(None),
            )
        ).one_or_none()
        if sub_unit is None:
            raise SubUnitNotFoundError(str(sub_unit_id), str(item_id))
        return sub_unit

    def _base_ratio(self, item_id: UUID, sub_unit_id: UUID | None) -> Decimal:
        if sub_unit_id is None:
            return Decimal("1")
        return self._load_sub_unit(sub_unit_id, item_id).ratio

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def purchase(
        self,
        item_id: UUID,
        branch_id: UUID,
        quantity: Decimal,
        unit_price: Decimal | None,
        transaction_id: UUID,
        actor_id: UUID,
        sub_unit_id: UUID | None = None,
        selling_price: Decimal | None = None,
    ) -> InventoryMovement:
        """
        Receive ``quantity`` (in the sub-unit if given) at ``unit_price``.

        The new cost is the weighted average of the stock on hand and the
        purchased lot, per base unit.
        """
        if unit_price is None:
            raise MissingUnitPriceError(str(item_id))

        item = self._load_item(item_id, branch_id, for_update=True)
        ratio = self._base_ratio(item_id, sub_unit_id)
        base_quantity = quantity * ratio
        base_unit_price = unit_price / ratio

        position = StockPosition(item.quantity, item.cost_per_unit).purchase(
            quantity=base_quantity,
            unit_price=base_unit_price,
            cost_decimal_places=self.cost_decimal_places,
        )
        item.quantity = position.quantity
        item.cost_per_unit = position.cost_per_unit
        if selling_price is not None:
            item.selling_price = selling_price
        item.updated_by_id = actor_id

        movement = self._append_movement(
            item=item,
            branch_id=branch_id,
            transaction_id=transaction_id,
            operation=OperationType.PURCHASE,
            base_quantity=base_quantity,
            unit_cost=round_money(base_unit_price, self.cost_decimal_places),
            actor_id=actor_id,
        )

        logger.info(
            "inventory_purchase_applied",
            extra={
                "inventory_item_id": str(item.id),
                "base_quantity": str(base_quantity),
                "new_quantity": str(position.quantity),
                "new_cost_per_unit": str(position.cost_per_unit),
            },
        )
        return movement

    def consume(
        self,
        item_id: UUID,
        branch_id: UUID,
        quantity: Decimal,
        transaction_id: UUID,
        actor_id: UUID,
        sub_unit_id: UUID | None = None,
    ) -> InventoryMovement:
        """
        Take ``quantity`` (in the sub-unit if given) out of stock.

        Raises:
            InsufficientStockError: Fewer base units on hand than requested.
        """
        item = self._load_item(item_id, branch_id)
        ratio = self._base_ratio(item_id, sub_unit_id)
        base_quantity = quantity * ratio

        if not self._decrement(item_id, branch_id, base_quantity, actor_id):
            # Re-read the committed quantity: raises if it is still short
            self.session.refresh(item)
            StockPosition(item.quantity, item.cost_per_unit).consume(base_quantity, item_id=item.id)
            # Stock arrived between the two statements
            if not self._decrement(item_id, branch_id, base_quantity, actor_id):
                self.session.refresh(item)
                raise InsufficientStockError(
                    inventory_item_id=str(item.id),
                    available=item.quantity,
                    requested=base_quantity,
                )

        self.session.refresh(item)

        movement = self._append_movement(
            item=item,
            branch_id=branch_id,
            transaction_id=transaction_id,
            operation=OperationType.CONSUMPTION,
            base_quantity=base_quantity,
            unit_cost=item.cost_per_unit,
            actor_id=actor_id,
        )

        logger.info(
            "inventory_consumption_applied",
            extra={
                "inventory_item_id": str(item.id),
                "base_quantity": str(base_quantity),
                "new_quantity": str(item.quantity),
            },
        )
        return movement

    def _decrement(
        self, item_id: UUID, branch_id: UUID, base_quantity: Decimal, actor_id: UUID
    ) -> bool:
        result = self.session.execute(
            update(InventoryItem)
            .where(
                InventoryItem.id == item_id,
                InventoryItem.branch_id == branch_id,
                InventoryItem.deleted_at.is_(None),
                InventoryItem.quantity >= base_quantity,
            )
            .values(
                quantity=InventoryItem.quantity - base_quantity,
                updated_by_id=actor_id,
                updated_at=self.clock.now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _append_movement(
        self,
        item: InventoryItem,
        branch_id: UUID,
        transaction_id: UUID,
        operation: OperationType,
        base_quantity: Decimal,
        unit_cost: Decimal,
        actor_id: UUID,
    ) -> InventoryMovement:
        movement = InventoryMovement(
            inventory_item_id=item.id,
            branch_id=branch_id,
            transaction_id=transaction_id,
            movement_type=operation.value,
            quantity=base_quantity,
            unit=item.unit,
            unit_cost=unit_cost,
            reason=f"{operation.value.title()} for transaction {transaction_id}",
            occurred_at=self.clock.now(),
            recorded_by_id=actor_id,
        )
        self.session.add(movement)
        self.session.flush()
        return movement

    # ------------------------------------------------------------------
    # Line item entrypoint
    # ------------------------------------------------------------------

    def process_inventory_operation(
        self,
        transaction_id: UUID,
        line_no: int,
        line: LineItemInput,
        amounts: DiscountResult,
        branch_id: UUID,
        actor_id: UUID,
    ) -> TransactionLineItem:
        """
        Apply one line item's stock operation and persist the line.

        ``amounts`` is the line's already computed subtotal, discount and
        total.  The line row references its transaction by id only.
        """
        operation = OperationType(line.operation_type)
        if operation is OperationType.PURCHASE:
            movement = self.purchase(
                item_id=line.inventory_item_id,
                branch_id=branch_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                transaction_id=transaction_id,
                actor_id=actor_id,
                sub_unit_id=line.inventory_sub_unit_id,
                selling_price=line.selling_price,
            )
        else:
            movement = self.consume(
                item_id=line.inventory_item_id,
                branch_id=branch_id,
                quantity=line.quantity,
                transaction_id=transaction_id,
                actor_id=actor_id,
                sub_unit_id=line.inventory_sub_unit_id,
            )

        line_item = TransactionLineItem(
            transaction_id=transaction_id,
            line_no=line_no,
            inventory_item_id=line.inventory_item_id,
            inventory_sub_unit_id=line.inventory_sub_unit_id,
            operation_type=operation.value,
            quantity=line.quantity,
            base_quantity=movement.quantity,
            unit_price=line.unit_price if line.unit_price is not None else ZERO,
            discount_type=DiscountType(line.discount_type).value if line.discount_type else None,
            discount_value=line.discount_value,
            subtotal=amounts.subtotal,
            discount_amount=amounts.discount_amount,
            total=amounts.total,
            notes=line.notes,
            created_at=self.clock.now(),
            updated_at=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(line_item)
        self.session.flush()
        return line_item
