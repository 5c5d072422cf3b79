"""Stock side of postings: weighted-average cost, sub-units, movements."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.domain.dtos import (
    ExpenseInput,
    IncomeInput,
    ItemizedAmount,
    LineItemInput,
)
from ledger_kernel.domain.values import OperationType, PaymentMethod
from ledger_kernel.exceptions import (
    AmountSourceError,
    InsufficientStockError,
    InventoryItemNotFoundError,
    MissingUnitPriceError,
    SubUnitNotFoundError,
)
from ledger_kernel.models import InventoryItem, InventoryMovement, Transaction, TransactionLineItem


def _purchase(today, *lines, **overrides) -> ExpenseInput:
    fields = dict(
        date=today,
        category="INVENTORY",
        source=ItemizedAmount(tuple(lines)),
        payment_method=PaymentMethod.CASH,
    )
    fields.update(overrides)
    return ExpenseInput(**fields)


def _sale(today, *lines) -> IncomeInput:
    return IncomeInput(
        date=today,
        category="SALES",
        source=ItemizedAmount(tuple(lines)),
        payment_method=PaymentMethod.CASH,
    )


def _movements(session, transaction_id) -> list[InventoryMovement]:
    session.expire_all()
    return list(
        session.scalars(
            select(InventoryMovement).where(InventoryMovement.transaction_id == transaction_id)
        )
    )


class TestPurchase:

    def test_weighted_average_cost(self, posting_service, accountant_a, seed, today, session):
        record = posting_service.create_expense(
            _purchase(
                today,
                LineItemInput(
                    inventory_item_id=seed.flour_id,
                    quantity=Decimal("5"),
                    unit_price=Decimal("10"),
                    operation_type=OperationType.PURCHASE,
                ),
            ),
            accountant_a,
        )

        assert record.total_amount == Decimal("50")
        (line,) = record.items
        assert line.operation_type is OperationType.PURCHASE
        assert line.base_quantity == Decimal("5")
        assert line.total == Decimal("50")

        session.expire_all()
        flour = session.get(InventoryItem, seed.flour_id)
        assert flour.quantity == Decimal("15")
        assert flour.cost_per_unit == Decimal("8.6667")

        (movement,) = _movements(session, record.id)
        assert movement.movement_type == "PURCHASE"
        assert movement.quantity == Decimal("5")
        assert movement.unit_cost == Decimal("10")
        assert movement.branch_id == seed.branch_a
        assert movement.recorded_by_id == accountant_a.id
        assert movement.reason == f"Purchase for transaction {record.id}"

    def test_purchase_by_sub_unit(self, posting_service, accountant_a, seed, today, session):
        record = posting_service.create_expense(
            _purchase(
                today,
                LineItemInput(
                    inventory_item_id=seed.sugar_id,
                    inventory_sub_unit_id=seed.sugar_sack_id,
                    quantity=Decimal("2"),
                    unit_price=Decimal("60"),
                    operation_type=OperationType.PURCHASE,
                ),
            ),
            accountant_a,
        )

        (line,) = record.items
        assert line.quantity == Decimal("2")
        assert line.base_quantity == Decimal("50")
        assert line.total == Decimal("120")

        session.expire_all()
        sugar = session.get(InventoryItem, seed.sugar_id)
        assert sugar.quantity == Decimal("100")
        assert sugar.cost_per_unit == Decimal("2.2")
        (movement,) = _movements(session, record.id)
        assert movement.unit_cost == Decimal("2.4")
        assert movement.unit == "kg"

    def test_selling_price_updated(self, posting_service, accountant_a, seed, today, session):
        posting_service.create_expense(
            _purchase(
                today,
                LineItemInput(
                    inventory_item_id=seed.flour_id,
                    quantity=Decimal("1"),
                    unit_price=Decimal("8"),
                    selling_price=Decimal("12.5"),
                    operation_type=OperationType.PURCHASE,
                ),
            ),
            accountant_a,
        )
        session.expire_all()
        assert session.get(InventoryItem, seed.flour_id).selling_price == Decimal("12.5")

    def test_missing_unit_price(self, posting_service, accountant_a, seed, today, session):
        with pytest.raises(MissingUnitPriceError):
            posting_service.create_expense(
                _purchase(
                    today,
                    LineItemInput(
                        inventory_item_id=seed.flour_id,
                        quantity=Decimal("5"),
                        operation_type=OperationType.PURCHASE,
                    ),
                ),
                accountant_a,
            )
        session.expire_all()
        assert session.scalar(select(func.count()).select_from(Transaction)) == 0

    def test_empty_item_list_rejected(self, posting_service, accountant_a, seed, today, session):
        with pytest.raises(AmountSourceError, match="items must not be empty"):
            posting_service.create_expense(_purchase(today), accountant_a)
        session.expire_all()
        assert session.scalar(select(func.count()).select_from(Transaction)) == 0


class TestConsumption:

    def test_insufficient_stock_leaves_item_unchanged(
        self, posting_service, accountant_a, seed, today, session
    ):
        with pytest.raises(InsufficientStockError) as exc_info:
            posting_service.create_income(
                _sale(
                    today,
                    LineItemInput(
                        inventory_item_id=seed.flour_id,
                        quantity=Decimal("12"),
                        unit_price=Decimal("20"),
                        operation_type=OperationType.CONSUMPTION,
                    ),
                ),
                accountant_a,
            )

        assert exc_info.value.available == Decimal("10")
        assert exc_info.value.requested == Decimal("12")
        session.expire_all()
        assert session.get(InventoryItem, seed.flour_id).quantity == Decimal("10")
        assert session.scalar(select(func.count()).select_from(TransactionLineItem)) == 0

    def test_consume_everything(self, posting_service, accountant_a, seed, today, session):
        posting_service.create_income(
            _sale(
                today,
                LineItemInput(
                    inventory_item_id=seed.flour_id,
                    quantity=Decimal("10"),
                    unit_price=Decimal("20"),
                    operation_type=OperationType.CONSUMPTION,
                ),
            ),
            accountant_a,
        )
        session.expire_all()
        flour = session.get(InventoryItem, seed.flour_id)
        assert flour.quantity == Decimal("0")
        assert flour.cost_per_unit == Decimal("8")

    def test_consume_by_sub_unit(self, posting_service, accountant_a, seed, today, session):
        record = posting_service.create_income(
            _sale(
                today,
                LineItemInput(
                    inventory_item_id=seed.sugar_id,
                    inventory_sub_unit_id=seed.sugar_sack_id,
                    quantity=Decimal("1"),
                    unit_price=Decimal("75"),
                    operation_type=OperationType.CONSUMPTION,
                ),
            ),
            accountant_a,
        )

        assert record.total_amount == Decimal("75")
        session.expire_all()
        assert session.get(InventoryItem, seed.sugar_id).quantity == Decimal("25")
        (movement,) = _movements(session, record.id)
        assert movement.movement_type == "CONSUMPTION"
        assert movement.quantity == Decimal("25")
        assert movement.unit_cost == Decimal("2")

    def test_purchase_then_consume_same_item(
        self, posting_service, accountant_a, seed, today, session
    ):
        """Lines apply in order, so a purchase can cover a later consumption."""
        record = posting_service.create_expense(
            _purchase(
                today,
                LineItemInput(
                    inventory_item_id=seed.flour_id,
                    quantity=Decimal("5"),
                    unit_price=Decimal("10"),
                    operation_type=OperationType.PURCHASE,
                ),
                LineItemInput(
                    inventory_item_id=seed.flour_id,
                    quantity=Decimal("14"),
                    operation_type=OperationType.CONSUMPTION,
                ),
            ),
            accountant_a,
        )

        assert [li.operation_type for li in record.items] == [
            OperationType.PURCHASE,
            OperationType.CONSUMPTION,
        ]
        assert record.total_amount == Decimal("50")
        session.expire_all()
        assert session.get(InventoryItem, seed.flour_id).quantity == Decimal("1")
        assert len(_movements(session, record.id)) == 2


class TestVisibility:

    def test_item_of_other_branch(self, posting_service, accountant_a, seed, today, session):
        with pytest.raises(InventoryItemNotFoundError):
            posting_service.create_income(
                _sale(
                    today,
                    LineItemInput(
                        inventory_item_id=seed.oil_b_id,
                        quantity=Decimal("1"),
                        unit_price=Decimal("9"),
                        operation_type=OperationType.CONSUMPTION,
                    ),
                ),
                accountant_a,
            )
        session.expire_all()
        assert session.get(InventoryItem, seed.oil_b_id).quantity == Decimal("20")
        assert session.scalar(select(func.count()).select_from(Transaction)) == 0

    def test_unknown_item(self, posting_service, accountant_a, seed, today):
        with pytest.raises(InventoryItemNotFoundError):
            posting_service.create_expense(
                _purchase(
                    today,
                    LineItemInput(
                        inventory_item_id=uuid4(),
                        quantity=Decimal("1"),
                        unit_price=Decimal("1"),
                        operation_type=OperationType.PURCHASE,
                    ),
                ),
                accountant_a,
            )

    def test_sub_unit_of_another_item(self, posting_service, accountant_a, seed, today):
        with pytest.raises(SubUnitNotFoundError):
            posting_service.create_expense(
                _purchase(
                    today,
                    LineItemInput(
                        inventory_item_id=seed.flour_id,
                        inventory_sub_unit_id=seed.sugar_sack_id,
                        quantity=Decimal("1"),
                        unit_price=Decimal("1"),
                        operation_type=OperationType.PURCHASE,
                    ),
                ),
                accountant_a,
            )
