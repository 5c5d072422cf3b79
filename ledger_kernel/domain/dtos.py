"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable structures that cross the core boundary: posting
    inputs (IncomeInput, ExpenseInput with their line items), the amount
    source sum type, transaction maintenance changes, query filters, and the
    read-side records returned to callers.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` class methods are
    boundary converters invoked only by the service layer.

Invariants enforced:
    - A posting carries exactly one amount source: a flat amount OR a
      non-empty tuple of line items.  ``FlatAmount | ItemizedAmount`` makes
      the two shapes distinct types; ``amount_source()`` builds one from the
      loose optional pair a transport layer usually has.
    - Records are snapshots; mutating the ORM row afterwards does not
      change them.

Failure modes:
    - AmountSourceError from amount_source() when neither or both inputs
      are given, or the item list is empty.

Data flow:
    IncomeInput / ExpenseInput -> posting orchestrator -> TransactionRecord
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, ClassVar, Sequence
from uuid import UUID

from ledger_kernel.db.types import to_decimal
from ledger_kernel.domain.values import (
    DiscountType,
    OperationType,
    PaymentMethod,
    TransactionType,
)
from ledger_kernel.exceptions import AmountSourceError

if TYPE_CHECKING:
    from ledger_kernel.models.transaction import Transaction as TransactionModel
    from ledger_kernel.models.transaction import (
        TransactionLineItem as TransactionLineItemModel,
    )


# ---------------------------------------------------------------------------
# Posting inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LineItemInput:
    """
    One inventory line of a multi-item posting.

    ``quantity`` is expressed in the sub-unit when ``inventory_sub_unit_id``
    is set, otherwise in the item's base unit.  ``unit_price`` is per that
    same unit and is mandatory for PURCHASE.
    """

    inventory_item_id: UUID
    quantity: Decimal
    operation_type: OperationType
    unit_price: Decimal | None = None
    inventory_sub_unit_id: UUID | None = None
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    selling_price: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class FlatAmount:
    """A posting whose nominal amount is given directly."""

    amount: Decimal


@dataclass(frozen=True, slots=True)
class ItemizedAmount:
    """A posting whose nominal amount is the sum of its line item totals."""

    items: tuple[LineItemInput, ...]


AmountSource = FlatAmount | ItemizedAmount


def amount_source(
    amount: Decimal | int | str | float | None = None,
    items: Sequence[LineItemInput] | None = None,
) -> AmountSource:
    """Build the amount source from an optional amount and optional items.

    A loose ``amount`` (int or str from a transport layer) is converted with
    ``to_decimal``; floats are accepted but go through their repr.
    """
    if items is not None and amount is not None:
        raise AmountSourceError("both amount and items were supplied")
    if items is not None:
        if len(items) == 0:
            raise AmountSourceError("items must not be empty")
        return ItemizedAmount(items=tuple(items))
    if amount is None:
        raise AmountSourceError("neither amount nor items was supplied")
    return FlatAmount(amount=to_decimal(amount))


@dataclass(frozen=True, slots=True)
class PostingInput:
    """Fields shared by income and expense postings."""

    transaction_type: ClassVar[TransactionType]

    date: date
    category: str
    source: AmountSource
    payment_method: PaymentMethod | str | None = None
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    discount_reason: str | None = None
    branch_id: UUID | None = None
    notes: str | None = None
    contact_id: UUID | None = None
    employee_id: UUID | None = None
    currency: str | None = None

    @property
    def has_transaction_discount(self) -> bool:
        return self.discount_type is not None and self.discount_value is not None

    @property
    def items(self) -> tuple[LineItemInput, ...]:
        if isinstance(self.source, ItemizedAmount):
            return self.source.items
        return ()


@dataclass(frozen=True, slots=True)
class IncomeInput(PostingInput):
    """
    Income posting.

    ``create_receivable`` records the whole posted amount as money still
    owed by ``contact_id``.
    """

    transaction_type: ClassVar[TransactionType] = TransactionType.INCOME

    create_receivable: bool = False
    receivable_due_date: date | None = None


@dataclass(frozen=True, slots=True)
class ExpenseInput(PostingInput):
    """
    Expense posting.

    ``paid_amount`` defaults to the full total.  When less is paid and
    ``create_debt_for_remaining`` is true, the remainder becomes a payable
    owed to ``contact_id``.
    """

    transaction_type: ClassVar[TransactionType] = TransactionType.EXPENSE

    paid_amount: Decimal | None = None
    create_debt_for_remaining: bool = True
    payable_due_date: date | None = None


@dataclass(frozen=True, slots=True)
class TransactionChanges:
    """
    Partial update of an existing transaction.

    None means "leave unchanged".  Amounts, items and links are not
    editable after posting and therefore have no field here.
    """

    date: date | None = None
    notes: str | None = None
    payment_method: PaymentMethod | str | None = None
    discount_reason: str | None = None
    category: str | None = None

    def fields_set(self) -> tuple[str, ...]:
        return tuple(
            name
            for name in ("date", "notes", "payment_method", "discount_reason", "category")
            if getattr(self, name) is not None
        )


# ---------------------------------------------------------------------------
# Query inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TransactionFilters:
    type: TransactionType | None = None
    branch_id: UUID | None = None
    category: str | None = None
    payment_method: PaymentMethod | None = None
    start_date: date | None = None
    end_date: date | None = None
    search: str | None = None
    employee_id: UUID | None = None


# ---------------------------------------------------------------------------
# Read-side records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LineItemRecord:
    id: UUID
    inventory_item_id: UUID
    inventory_sub_unit_id: UUID | None
    quantity: Decimal
    base_quantity: Decimal
    unit_price: Decimal
    operation_type: OperationType
    discount_type: DiscountType | None
    discount_value: Decimal | None
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    notes: str | None

    @classmethod
    def from_model(cls, model: TransactionLineItemModel) -> LineItemRecord:
        return cls(
            id=model.id,
            inventory_item_id=model.inventory_item_id,
            inventory_sub_unit_id=model.inventory_sub_unit_id,
            quantity=model.quantity,
            base_quantity=model.base_quantity,
            unit_price=model.unit_price,
            operation_type=OperationType(model.operation_type),
            discount_type=DiscountType(model.discount_type) if model.discount_type else None,
            discount_value=model.discount_value,
            subtotal=model.subtotal,
            discount_amount=model.discount_amount,
            total=model.total,
            notes=model.notes,
        )


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """
    Snapshot of a persisted transaction and its line items.

    ``amount`` is what was actually paid/received at posting time and
    ``total_amount`` the nominal value; ``remaining_amount`` is the
    difference carried by a payable, if one was spawned.
    """

    id: UUID
    type: TransactionType
    amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    category: str
    payment_method: PaymentMethod | None
    date: date
    branch_id: UUID
    created_by_id: UUID
    currency: str
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    discount_reason: str | None = None
    linked_payable_id: UUID | None = None
    linked_receivable_id: UUID | None = None
    employee_id: UUID | None = None
    contact_id: UUID | None = None
    notes: str | None = None
    created_at: datetime | None = None
    deleted_at: datetime | None = None
    items: tuple[LineItemRecord, ...] = field(default_factory=tuple)

    @property
    def remaining_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount

    @property
    def is_linked(self) -> bool:
        return self.linked_payable_id is not None or self.linked_receivable_id is not None

    @classmethod
    def from_model(cls, model: TransactionModel) -> TransactionRecord:
        return cls(
            id=model.id,
            type=TransactionType(model.type),
            amount=model.amount,
            total_amount=model.total_amount,
            paid_amount=model.paid_amount,
            subtotal=model.subtotal,
            discount_amount=model.discount_amount,
            category=model.category,
            payment_method=PaymentMethod(model.payment_method) if model.payment_method else None,
            date=model.date,
            branch_id=model.branch_id,
            created_by_id=model.created_by_id,
            currency=model.currency,
            discount_type=DiscountType(model.discount_type) if model.discount_type else None,
            discount_value=model.discount_value,
            discount_reason=model.discount_reason,
            linked_payable_id=model.linked_payable_id,
            linked_receivable_id=model.linked_receivable_id,
            employee_id=model.employee_id,
            contact_id=model.contact_id,
            notes=model.notes,
            created_at=model.created_at,
            deleted_at=model.deleted_at,
            items=tuple(LineItemRecord.from_model(li) for li in model.line_items),
        )


@dataclass(frozen=True, slots=True)
class TransactionPage:
    items: tuple[TransactionRecord, ...]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


@dataclass(frozen=True, slots=True)
class DailySummary:
    """Per-day totals for one branch (or all branches when branch_id is None)."""

    date: date
    branch_id: UUID | None
    income_cash: Decimal
    income_master: Decimal
    total_income: Decimal
    total_expense: Decimal

    @property
    def net(self) -> Decimal:
        return self.total_income - self.total_expense
