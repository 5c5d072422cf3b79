"""
Module: ledger_kernel.models.directory
Responsibility: Reference data the posting core reads but never writes:
    contacts (debt counterparties), employees and currency settings.
Architecture position: Kernel > Models.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class Contact(TrackedBase):
    """Supplier or customer.  branch_id None means visible to every branch."""

    __tablename__ = "contacts"

    __table_args__ = (Index("idx_contact_branch", "branch_id"),)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    branch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)


class Employee(TrackedBase):

    __tablename__ = "employees"

    __table_args__ = (Index("idx_employee_branch", "branch_id"),)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    branch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)


class CurrencySetting(TrackedBase):
    """A configured currency; at most one row is the active default."""

    __tablename__ = "currency_settings"

    code: Mapped[str] = mapped_column(String(3), nullable=False, unique=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
