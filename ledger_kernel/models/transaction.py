"""
Module: ledger_kernel.models.transaction
Responsibility: ORM models for ledger transactions and their inventory line
    items.
Architecture position: Kernel > Models.  Inherits from TrackedBase.

Invariants enforced:
    - Money and quantities are Decimal (Numeric(38, 9)), never float.
    - paid_amount <= total_amount; line quantity > 0; unit_price >= 0.
    - Line items are owned by exactly one transaction and are never updated
      or deleted (db/immutability.py).
    - Transactions are soft-deleted only; a transaction linked to a payable or
      receivable cannot be updated at all (db/immutability.py).

Audit relevance:
    The transaction row carries the amounts its debt record was derived from;
    linked_payable_id / linked_receivable_id point at that record.
"""

import datetime as dt
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString


class Transaction(TrackedBase):
    """
    A posted income or expense.

    Contract:
        ``amount`` is what was paid (expense) or received (income) at posting
        time.  ``total_amount`` is the nominal value after discount and
        ``subtotal`` the value before it.

    Guarantees:
        - total_amount == subtotal - discount_amount.
        - With line items, total_amount == sum of line totals.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_txn_branch_date", "branch_id", "date"),
        Index("idx_txn_type", "type"),
        Index("idx_txn_category", "category"),
        Index("idx_txn_employee", "employee_id"),
        CheckConstraint("amount >= 0", name="ck_txn_amount_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_txn_paid_non_negative"),
        CheckConstraint("paid_amount <= total_amount", name="ck_txn_paid_within_total"),
        CheckConstraint("type IN ('INCOME', 'EXPENSE')", name="ck_txn_type"),
    )

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    branch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)

    discount_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    discount_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    discount_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Debt records spawned at posting time (no FK: debts reference back)
    linked_payable_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    linked_receivable_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    employee_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("employees.id"), nullable=True
    )
    contact_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("contacts.id"), nullable=True
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[dt.datetime | None] = mapped_column(nullable=True)

    line_items: Mapped[list["TransactionLineItem"]] = relationship(
        back_populates="transaction",
        order_by="TransactionLineItem.line_no",
        lazy="selectin",
    )

    @property
    def is_linked(self) -> bool:
        return self.linked_payable_id is not None or self.linked_receivable_id is not None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Transaction {self.id} {self.type} {self.category} total={self.total_amount}>"


class TransactionLineItem(TrackedBase):
    """
    One inventory line of a multi-item transaction.

    Guarantees:
        - quantity is in the unit the caller used (sub-unit when
          inventory_sub_unit_id is set); base_quantity is the stock actually
          moved, in the item's base unit.
        - total == subtotal - discount_amount.
    """

    __tablename__ = "transaction_line_items"

    __table_args__ = (
        Index("idx_line_transaction", "transaction_id"),
        Index("idx_line_inventory_item", "inventory_item_id"),
        CheckConstraint("quantity > 0", name="ck_line_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_line_unit_price_non_negative"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("transactions.id"), nullable=False
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    inventory_item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("inventory_items.id"), nullable=False
    )
    inventory_sub_unit_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("inventory_sub_units.id"), nullable=True
    )

    operation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    base_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    discount_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    discount_value: Mapped[Decimal | None] = mapped_column(nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total: Mapped[Decimal] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    transaction: Mapped["Transaction"] = relationship(back_populates="line_items")

    def __repr__(self) -> str:
        return (
            f"<TransactionLineItem {self.operation_type} item={self.inventory_item_id} "
            f"qty={self.quantity} total={self.total}>"
        )
