"""Income postings: flat amounts, discounts, line items and receivables."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.domain.dtos import FlatAmount, IncomeInput, ItemizedAmount, LineItemInput
from ledger_kernel.domain.values import (
    DiscountType,
    OperationType,
    PaymentMethod,
    TransactionType,
)
from ledger_kernel.exceptions import (
    BranchRequiredError,
    CategoryRuleViolationError,
    ContactNotFoundError,
    ContactRequiredError,
    FutureDateError,
    InvalidAmountError,
    InvalidPaymentMethodError,
    UnknownCategoryError,
    ValidationError,
)
from ledger_kernel.models import (
    AccountReceivable,
    InventoryItem,
    InventoryMovement,
    Transaction,
)
from ledger_services.posting_orchestrator import TransactionPostingService


def _income(today, **overrides) -> IncomeInput:
    fields = dict(
        date=today,
        category="SALES",
        source=FlatAmount(Decimal("100")),
        payment_method=PaymentMethod.CASH,
    )
    fields.update(overrides)
    return IncomeInput(**fields)


def _count(session, model) -> int:
    session.expire_all()
    return session.scalar(select(func.count()).select_from(model))


class TestFlatIncome:

    def test_posts_income(self, posting_service, accountant_a, seed, today, session):
        record = posting_service.create_income(_income(today, notes="Morning till"), accountant_a)

        assert record.type is TransactionType.INCOME
        assert record.amount == Decimal("100.00")
        assert record.total_amount == Decimal("100.00")
        assert record.paid_amount == Decimal("100.00")
        assert record.discount_amount == Decimal("0")
        assert record.branch_id == seed.branch_a
        assert record.created_by_id == accountant_a.id
        assert record.currency == "EGP"
        assert record.items == ()

        stored = session.get(Transaction, record.id)
        assert stored.category == "SALES"
        assert stored.notes == "Morning till"

    def test_percentage_discount(self, posting_service, accountant_a, seed, today):
        record = posting_service.create_income(
            _income(
                today,
                discount_type=DiscountType.PERCENTAGE,
                discount_value=Decimal("10"),
                discount_reason="Loyalty",
            ),
            accountant_a,
        )
        assert record.subtotal == Decimal("100.00")
        assert record.discount_amount == Decimal("10.00")
        assert record.total_amount == Decimal("90.00")
        assert record.amount == Decimal("90.00")
        assert record.discount_type is DiscountType.PERCENTAGE
        assert record.discount_reason == "Loyalty"

    def test_discount_forbidden_by_category(self, posting_service, accountant_a, seed, today, session):
        with pytest.raises(CategoryRuleViolationError) as exc_info:
            posting_service.create_income(
                _income(
                    today,
                    category="APP_PURCHASES",
                    discount_type=DiscountType.PERCENTAGE,
                    discount_value=Decimal("10"),
                ),
                accountant_a,
            )
        assert exc_info.value.category == "APP_PURCHASES"
        assert _count(session, Transaction) == 0

    def test_alias_stored_as_code(self, posting_service, accountant_a, seed, today):
        record = posting_service.create_income(_income(today, category="خدمات"), accountant_a)
        assert record.category == "SERVICES"

    @pytest.mark.parametrize("category", ["LOTTERY", "RENT"])
    def test_category_outside_income_taxonomy(self, posting_service, accountant_a, seed, today, category):
        with pytest.raises(UnknownCategoryError):
            posting_service.create_income(_income(today, category=category), accountant_a)

    @pytest.mark.parametrize("method", [None, "BITCOIN"])
    def test_payment_method_required(self, posting_service, accountant_a, seed, today, method):
        with pytest.raises(InvalidPaymentMethodError):
            posting_service.create_income(_income(today, payment_method=method), accountant_a)

    def test_payment_method_as_string(self, posting_service, accountant_a, seed, today):
        record = posting_service.create_income(_income(today, payment_method="MASTER"), accountant_a)
        assert record.payment_method is PaymentMethod.MASTER

    def test_future_date_rejected(self, posting_service, accountant_a, seed, deterministic_clock):
        tomorrow = deterministic_clock.today().replace(day=2)
        with pytest.raises(FutureDateError):
            posting_service.create_income(_income(tomorrow), accountant_a)

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_non_positive_amount(self, posting_service, accountant_a, seed, today, amount):
        with pytest.raises(InvalidAmountError):
            posting_service.create_income(_income(today, source=FlatAmount(amount)), accountant_a)

    def test_amount_rounding_to_zero_rejected(self, posting_service, accountant_a, seed, today, session):
        with pytest.raises(InvalidAmountError):
            posting_service.create_income(
                _income(today, source=FlatAmount(Decimal("0.004"))), accountant_a
            )
        assert _count(session, Transaction) == 0

    def test_amount_stored_at_money_precision(self, posting_service, accountant_a, seed, today):
        record = posting_service.create_income(
            _income(today, source=FlatAmount(Decimal("0.005"))), accountant_a
        )
        assert record.total_amount == Decimal("0.01")

    def test_employee_rejected_outside_salary_category(
        self, posting_service, accountant_a, seed, today
    ):
        with pytest.raises(CategoryRuleViolationError, match="employee"):
            posting_service.create_income(
                _income(today, employee_id=seed.employee_id), accountant_a
            )


class TestBranchAndCurrency:

    def test_accountant_branch_override_ignored(self, posting_service, accountant_a, seed, today):
        record = posting_service.create_income(
            _income(today, branch_id=seed.branch_b), accountant_a
        )
        assert record.branch_id == seed.branch_a

    def test_admin_posts_to_requested_branch(self, posting_service, admin, seed, today):
        record = posting_service.create_income(_income(today, branch_id=seed.branch_b), admin)
        assert record.branch_id == seed.branch_b

    def test_admin_without_branch_rejected(self, posting_service, admin, seed, today):
        with pytest.raises(BranchRequiredError):
            posting_service.create_income(_income(today), admin)

    def test_explicit_currency_normalized(self, posting_service, accountant_a, seed, today):
        record = posting_service.create_income(_income(today, currency="usd"), accountant_a)
        assert record.currency == "USD"

    def test_malformed_currency(self, posting_service, accountant_a, seed, today):
        with pytest.raises(ValidationError) as exc_info:
            posting_service.create_income(_income(today, currency="US"), accountant_a)
        assert exc_info.value.field == "currency"

    def test_fallback_currency(
        self, unit_of_work, deterministic_clock, ledger_config, accountant_a, seed, today
    ):
        class NoDefault:
            def __init__(self, session):
                pass

            def default_currency_code(self):
                return None

        service = TransactionPostingService(
            unit_of_work,
            clock=deterministic_clock,
            config=ledger_config,
            currency_lookup=NoDefault,
        )
        record = service.create_income(_income(today), accountant_a)
        assert record.currency == ledger_config.posting.fallback_currency


class TestReceivable:

    def test_receivable_spawned(self, posting_service, accountant_a, seed, today, session, audit):
        record = posting_service.create_income(
            _income(
                today,
                category="SERVICES",
                source=FlatAmount(Decimal("750")),
                create_receivable=True,
                contact_id=seed.customer_id,
                receivable_due_date=today.replace(month=3),
            ),
            accountant_a,
        )

        assert record.linked_receivable_id is not None
        receivable = session.get(AccountReceivable, record.linked_receivable_id)
        assert receivable.original_amount == Decimal("750")
        assert receivable.remaining_amount == Decimal("750")
        assert receivable.status == "ACTIVE"
        assert receivable.contact_id == seed.customer_id
        assert receivable.linked_transaction_id == record.id
        assert receivable.branch_id == seed.branch_a
        assert receivable.due_date == today.replace(month=3)

        entity_types = [entry[1] for entry in audit.creates]
        assert entity_types == ["TRANSACTION", "ACCOUNT_RECEIVABLE"]

    def test_receivable_needs_contact(self, posting_service, accountant_a, seed, today, session):
        with pytest.raises(ContactRequiredError):
            posting_service.create_income(_income(today, create_receivable=True), accountant_a)
        assert _count(session, Transaction) == 0

    def test_contact_from_other_branch(self, posting_service, accountant_a, seed, today, session):
        with pytest.raises(ContactNotFoundError):
            posting_service.create_income(
                _income(today, create_receivable=True, contact_id=seed.supplier_b_id),
                accountant_a,
            )
        assert _count(session, Transaction) == 0
        assert _count(session, AccountReceivable) == 0

    def test_unknown_contact(self, posting_service, accountant_a, seed, today):
        with pytest.raises(ContactNotFoundError):
            posting_service.create_income(_income(today, contact_id=uuid4()), accountant_a)


class TestItemizedIncome:

    def test_sale_consumes_stock(self, posting_service, accountant_a, seed, today, session):
        record = posting_service.create_income(
            _income(
                today,
                source=ItemizedAmount((
                    LineItemInput(
                        inventory_item_id=seed.flour_id,
                        quantity=Decimal("2"),
                        unit_price=Decimal("20"),
                        operation_type=OperationType.CONSUMPTION,
                    ),
                    LineItemInput(
                        inventory_item_id=seed.sugar_id,
                        quantity=Decimal("5"),
                        unit_price=Decimal("4"),
                        operation_type=OperationType.CONSUMPTION,
                        discount_type=DiscountType.AMOUNT,
                        discount_value=Decimal("2.5"),
                    ),
                )),
            ),
            accountant_a,
        )

        assert [item.total for item in record.items] == [Decimal("40.00"), Decimal("17.50")]
        assert record.subtotal == Decimal("60.00")
        assert record.discount_amount == Decimal("2.50")
        assert record.total_amount == sum(item.total for item in record.items)
        assert record.amount == Decimal("57.50")
        assert record.discount_type is None

        session.expire_all()
        assert session.get(InventoryItem, seed.flour_id).quantity == Decimal("8")
        assert session.get(InventoryItem, seed.sugar_id).quantity == Decimal("45")
        movements = session.scalars(
            select(InventoryMovement).where(InventoryMovement.transaction_id == record.id)
        ).all()
        assert sorted(m.movement_type for m in movements) == ["CONSUMPTION", "CONSUMPTION"]

    def test_transaction_discount_with_items_rejected(
        self, posting_service, accountant_a, seed, today
    ):
        with pytest.raises(ValidationError, match="line items"):
            posting_service.create_income(
                _income(
                    today,
                    source=ItemizedAmount((
                        LineItemInput(
                            inventory_item_id=seed.flour_id,
                            quantity=Decimal("1"),
                            unit_price=Decimal("20"),
                            operation_type=OperationType.CONSUMPTION,
                        ),
                    )),
                    discount_type=DiscountType.AMOUNT,
                    discount_value=Decimal("5"),
                ),
                accountant_a,
            )

    def test_items_forbidden_by_category(self, posting_service, accountant_a, seed, today):
        with pytest.raises(CategoryRuleViolationError, match="line items"):
            posting_service.create_income(
                _income(
                    today,
                    category="SERVICES",
                    source=ItemizedAmount((
                        LineItemInput(
                            inventory_item_id=seed.flour_id,
                            quantity=Decimal("1"),
                            unit_price=Decimal("20"),
                            operation_type=OperationType.CONSUMPTION,
                        ),
                    )),
                ),
                accountant_a,
            )
