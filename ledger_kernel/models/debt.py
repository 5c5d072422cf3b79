"""
Module: ledger_kernel.models.debt
Responsibility: ORM models for accounts payable and accounts receivable.
Architecture position: Kernel > Models.

Invariants enforced:
    - 0 <= remaining_amount <= original_amount (schema CHECK).
    - status is derived from the amounts (domain.values.derive_debt_status).
    - linked_transaction_id names the transaction that spawned the record.
      It is a plain column: the transaction row references the debt back
      and both rows are written in the same atomic unit.
"""

import datetime as dt
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class _DebtColumns:
    branch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    contact_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("contacts.id"), nullable=False
    )
    original_amount: Mapped[Decimal] = mapped_column(nullable=False)
    remaining_amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    due_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    linked_transaction_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    deleted_at: Mapped[dt.datetime | None] = mapped_column(nullable=True)


class AccountPayable(_DebtColumns, TrackedBase):
    """Money the business owes a contact (unpaid part of an expense)."""

    __tablename__ = "accounts_payable"

    __table_args__ = (
        Index("idx_payable_branch", "branch_id"),
        Index("idx_payable_contact", "contact_id"),
        Index("idx_payable_transaction", "linked_transaction_id"),
        CheckConstraint("remaining_amount >= 0", name="ck_payable_remaining_non_negative"),
        CheckConstraint(
            "remaining_amount <= original_amount", name="ck_payable_remaining_within_original"
        ),
    )

    def __repr__(self) -> str:
        return f"<AccountPayable {self.id} remaining={self.remaining_amount} status={self.status}>"


class AccountReceivable(_DebtColumns, TrackedBase):
    """Money a contact owes the business (uncollected income)."""

    __tablename__ = "accounts_receivable"

    __table_args__ = (
        Index("idx_receivable_branch", "branch_id"),
        Index("idx_receivable_contact", "contact_id"),
        Index("idx_receivable_transaction", "linked_transaction_id"),
        CheckConstraint("remaining_amount >= 0", name="ck_receivable_remaining_non_negative"),
        CheckConstraint(
            "remaining_amount <= original_amount",
            name="ck_receivable_remaining_within_original",
        ),
    )

    def __repr__(self) -> str:
        return f"<AccountReceivable {self.id} remaining={self.remaining_amount} status={self.status}>"
