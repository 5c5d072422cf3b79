"""
Module: ledger_kernel.models.inventory
Responsibility: ORM models for branch-scoped inventory items, their sub-units,
    and the append-only stock movement history.
Architecture position: Kernel > Models.

Invariants enforced:
    - inventory_items.quantity >= 0 at the schema level as well as in the
      conditional decrement used by the valuation service.
    - cost_per_unit is the running weighted-average cost per base unit.
    - InventoryMovement rows are never updated or deleted.

Failure modes:
    - IntegrityError if a write would drive quantity below zero.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString


class InventoryItem(TrackedBase):
    """
    Stock of one article in one branch.

    Non-goals:
        - Lot tracking (FIFO/LIFO).  Purchases blend into cost_per_unit.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        Index("idx_inv_item_branch", "branch_id"),
        CheckConstraint("quantity >= 0", name="ck_inv_item_quantity_non_negative"),
        CheckConstraint("cost_per_unit >= 0", name="ck_inv_item_cost_non_negative"),
    )

    branch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    cost_per_unit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    selling_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    sub_units: Mapped[list["InventorySubUnit"]] = relationship(
        back_populates="inventory_item",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<InventoryItem {self.name} qty={self.quantity} {self.unit} @ {self.cost_per_unit}>"


class InventorySubUnit(TrackedBase):
    """
    Alternative unit an item may be bought or used in.

    ``ratio`` is the number of base units in one sub-unit (a 25 kg sack of a
    kg-tracked item has ratio 25).
    """

    __tablename__ = "inventory_sub_units"

    __table_args__ = (
        Index("idx_inv_sub_unit_item", "inventory_item_id"),
        CheckConstraint("ratio > 0", name="ck_inv_sub_unit_ratio_positive"),
    )

    inventory_item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("inventory_items.id"), nullable=False
    )
    unit_name: Mapped[str] = mapped_column(String(50), nullable=False)
    ratio: Mapped[Decimal] = mapped_column(nullable=False)
    selling_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    inventory_item: Mapped["InventoryItem"] = relationship(back_populates="sub_units")


class InventoryMovement(Base):
    """
    Append-only record of one stock change.

    Guarantees:
        - quantity is positive and in base units; movement_type gives the sign.
        - Each row names the transaction that caused it.
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        Index("idx_inv_movement_item", "inventory_item_id"),
        Index("idx_inv_movement_transaction", "transaction_id"),
        CheckConstraint("quantity > 0", name="ck_inv_movement_quantity_positive"),
    )

    inventory_item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("inventory_items.id"), nullable=False
    )
    branch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("transactions.id"), nullable=False
    )
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    recorded_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<InventoryMovement {self.movement_type} item={self.inventory_item_id} qty={self.quantity}>"
