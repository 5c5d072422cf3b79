"""Tests for the posting DTOs and read-side records."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import (
    ExpenseInput,
    FlatAmount,
    IncomeInput,
    ItemizedAmount,
    LineItemInput,
    TransactionChanges,
    TransactionPage,
    amount_source,
)
from ledger_kernel.domain.values import OperationType, TransactionType
from ledger_kernel.exceptions import AmountSourceError


def _line() -> LineItemInput:
    return LineItemInput(
        inventory_item_id=uuid4(),
        quantity=Decimal("1"),
        operation_type=OperationType.CONSUMPTION,
    )


class TestAmountSource:

    def test_flat_amount(self):
        assert amount_source(amount=Decimal("100")) == FlatAmount(Decimal("100"))

    def test_loose_amount_converted(self):
        assert amount_source(amount="12.50") == FlatAmount(Decimal("12.50"))
        assert amount_source(amount=0.1) == FlatAmount(Decimal("0.1"))

    def test_items(self):
        line = _line()
        source = amount_source(items=[line])
        assert isinstance(source, ItemizedAmount)
        assert source.items == (line,)

    def test_both_rejected(self):
        with pytest.raises(AmountSourceError, match="both"):
            amount_source(amount=Decimal("1"), items=[_line()])

    def test_neither_rejected(self):
        with pytest.raises(AmountSourceError, match="neither"):
            amount_source()

    def test_empty_items_rejected(self):
        with pytest.raises(AmountSourceError, match="empty"):
            amount_source(items=[])


class TestPostingInputs:

    def test_type_is_fixed_per_class(self):
        assert IncomeInput.transaction_type is TransactionType.INCOME
        assert ExpenseInput.transaction_type is TransactionType.EXPENSE

    def test_expense_defaults(self):
        dto = ExpenseInput(date=date(2026, 1, 1), category="RENT", source=FlatAmount(Decimal("5")))
        assert dto.paid_amount is None
        assert dto.create_debt_for_remaining is True
        assert dto.items == ()

    def test_transaction_discount_needs_type_and_value(self):
        dto = IncomeInput(
            date=date(2026, 1, 1),
            category="SALES",
            source=FlatAmount(Decimal("5")),
            discount_value=Decimal("10"),
        )
        assert not dto.has_transaction_discount


class TestTransactionChanges:

    def test_fields_set_lists_only_given_fields(self):
        changes = TransactionChanges(notes="x", category="RENT")
        assert changes.fields_set() == ("notes", "category")

    def test_empty(self):
        assert TransactionChanges().fields_set() == ()


class TestTransactionPage:

    @pytest.mark.parametrize(
        "total,limit,pages", [(0, 10, 0), (1, 10, 1), (10, 10, 1), (11, 10, 2)]
    )
    def test_total_pages(self, total, limit, pages):
        assert TransactionPage(items=(), total=total, page=1, limit=limit).total_pages == pages
