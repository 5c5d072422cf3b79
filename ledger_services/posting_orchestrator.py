"""
Transaction Posting Orchestrator - Coordinates income and expense postings.

The orchestrator ties together:
- Branch resolver: which branch the caller posts to
- Category policy table: what the category permits
- Discount calculator: line and transaction totals
- Inventory valuation: stock transitions per line item
- Debt spawner: payable / receivable for unsettled amounts
- Post-commit effects: audit, notification, live update

Each posting runs in two phases.  Planning is pure: every rule that can be
checked from the request alone is checked before a session is opened, so a
rejected request never writes.  Persisting happens inside
``UnitOfWork.run``: reference lookups first, then the transaction row, line
items, stock changes and the debt record, committed together.  Side effects
fire only after the commit and can never undo it.
"""

import time
from concurrent.futures import Executor
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID
from uuid import uuid4 as _uuid4

from sqlalchemy.orm import Session

from ledger_config import LedgerConfig, get_active_config
from ledger_config.schema import CategoryPolicy
from ledger_engines.discount import DiscountResult, calculate_discount, calculate_item_total
from ledger_engines.payment_split import PaymentSplit, split_payment
from ledger_kernel.db.types import ZERO, normalize_currency_code, round_money
from ledger_kernel.db.unit_of_work import UnitOfWork
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    ExpenseInput,
    FlatAmount,
    IncomeInput,
    LineItemInput,
    PostingInput,
    TransactionChanges,
    TransactionRecord,
)
from ledger_kernel.domain.values import (
    Caller,
    DiscountType,
    EmployeeStatus,
    OperationType,
    PaymentMethod,
    TransactionType,
)
from ledger_kernel.exceptions import (
    AmountSourceError,
    CategoryRuleViolationError,
    EmployeeNotFoundError,
    EmployeeRequiredError,
    FutureDateError,
    InactiveEmployeeError,
    InvalidAmountError,
    InvalidLineItemError,
    InvalidPaymentMethodError,
    LedgerError,
    LinkedTransactionImmutableError,
    MissingUnitPriceError,
    PersistenceError,
    TransactionNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.transaction import Transaction
from ledger_services.branch_resolver import resolve_branch_id, validate_branch_access
from ledger_services.collaborators import (
    AuditRecorder,
    CurrencyLookup,
    EmployeeDirectory,
    LiveUpdateBroadcaster,
    NotificationDispatcher,
    NullLiveUpdateBroadcaster,
    NullNotificationDispatcher,
    SqlCurrencyLookup,
    SqlEmployeeDirectory,
    StructuredLogAuditRecorder,
)
from ledger_services.debt_spawner import (
    DebtSpawner,
    debt_snapshot,
    payable_due,
    require_contact_for_payable,
    require_contact_for_receivable,
)
from ledger_services.inventory_valuation import InventoryValuationService
from ledger_services.post_commit import (
    ENTITY_ACCOUNT_PAYABLE,
    ENTITY_ACCOUNT_RECEIVABLE,
    PostCommitEffects,
)

logger = get_logger("services.posting_orchestrator")


@dataclass(frozen=True)
class PostingPlan:
    """Everything a posting will write, decided before the unit of work."""

    transaction_id: UUID
    transaction_type: TransactionType
    branch_id: UUID
    policy: CategoryPolicy
    payment_method: PaymentMethod | None
    amounts: DiscountResult
    split: PaymentSplit
    lines: tuple[tuple[LineItemInput, DiscountResult], ...]
    currency: str | None
    payable_id: UUID | None
    receivable_id: UUID | None
    request: PostingInput


@dataclass(frozen=True)
class PostingOutcome:
    record: TransactionRecord
    spawned: tuple[tuple[str, UUID, dict[str, Any]], ...] = ()


def build_unit_of_work(
    session_factory: Callable[[], Session],
    config: LedgerConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> UnitOfWork:
    """UnitOfWork whose retry budget comes from the posting settings."""
    settings = (config or get_active_config()).posting
    return UnitOfWork(
        session_factory,
        max_attempts=settings.max_commit_attempts,
        backoff_seconds=settings.retry_backoff_seconds,
        sleep=sleep,
    )


class TransactionPostingService:
    """
    Use cases that create and maintain ledger transactions.

    Contract:
        ``create_income`` / ``create_expense`` return the persisted
        transaction once its atomic unit has committed.  ``update_transaction``
        and ``remove_transaction`` edit descriptive fields or soft-delete an
        unlinked transaction.

    Guarantees:
        - Validation failures abort before any write.
        - Transaction, line items, stock changes and the spawned debt commit
          together or not at all.
        - Post-commit side effect failures are logged, never raised.

    Non-goals:
        - Payments against payables/receivables after posting.
        - Editing amounts or line items of a posted transaction.
    """

    def __init__(
        self,
        unit_of_work: UnitOfWork,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
        audit: AuditRecorder | None = None,
        notifier: NotificationDispatcher | None = None,
        broadcaster: LiveUpdateBroadcaster | None = None,
        employee_directory: Callable[[Session], EmployeeDirectory] = SqlEmployeeDirectory,
        currency_lookup: Callable[[Session], CurrencyLookup] = SqlCurrencyLookup,
        executor: Executor | None = None,
    ):
        self._uow = unit_of_work
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._employee_directory = employee_directory
        self._currency_lookup = currency_lookup
        self._effects = PostCommitEffects(
            audit=audit or StructuredLogAuditRecorder(),
            notifier=notifier or NullNotificationDispatcher(),
            broadcaster=broadcaster or NullLiveUpdateBroadcaster(),
            executor=executor,
        )

    # ------------------------------------------------------------------
    # Posting use cases
    # ------------------------------------------------------------------

    def create_income(self, dto: IncomeInput, caller: Caller) -> TransactionRecord:
        return self._post(dto, caller)

    def create_expense(self, dto: ExpenseInput, caller: Caller) -> TransactionRecord:
        return self._post(dto, caller)

    def _post(self, dto: PostingInput, caller: Caller) -> TransactionRecord:
        txn_type = dto.transaction_type
        correlation_id = str(_uuid4())

        with LogContext.bind(
            correlation_id=correlation_id,
            actor_id=caller.id,
            operation=f"create_{txn_type.value.lower()}",
        ):
            logger.info(
                "posting_started",
                extra={
                    "transaction_type": txn_type.value,
                    "category": dto.category,
                    "item_count": len(dto.items),
                },
            )
            t0 = time.monotonic()

            try:
                plan = self.plan(dto, caller)
                with LogContext.bind(branch_id=plan.branch_id, transaction_id=plan.transaction_id):
                    outcome = self._uow.run(lambda session: self._persist(session, plan, caller))
            except PersistenceError:
                logger.error(
                    "posting_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise
            except LedgerError as exc:
                logger.warning(
                    "posting_rejected",
                    extra={
                        "error_code": exc.code,
                        "error_message": str(exc),
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                raise
            except Exception:
                logger.error(
                    "posting_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

            record = outcome.record
            with LogContext.bind(branch_id=record.branch_id, transaction_id=record.id):
                logger.info(
                    "posting_completed",
                    extra={
                        "transaction_type": record.type.value,
                        "category": record.category,
                        "total_amount": str(record.total_amount),
                        "paid_amount": str(record.paid_amount),
                        "linked_payable_id": record.linked_payable_id,
                        "linked_receivable_id": record.linked_receivable_id,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                self._effects.after_create(record, caller.id, outcome.spawned)
            return record

    # ------------------------------------------------------------------
    # Planning (pure)
    # ------------------------------------------------------------------

    def plan(self, dto: PostingInput, caller: Caller) -> PostingPlan:
        """
        Validate ``dto`` and compute every amount the posting will store.

        Reads nothing from the database; reference data (employee, contact,
        inventory) is checked inside the unit of work.
        """
        txn_type = dto.transaction_type
        branch_id = resolve_branch_id(caller, dto.branch_id)
        policy = self._config.categories.resolve(dto.category, txn_type)
        payment_method = self._payment_method(dto.payment_method, txn_type)
        self._check_date(dto.date)
        self._check_employee_rule(policy, dto.employee_id)

        places = self._config.posting.money_decimal_places
        if isinstance(dto.source, FlatAmount):
            lines: tuple[tuple[LineItemInput, DiscountResult], ...] = ()
            amounts = self._flat_amounts(dto, policy, places)
        else:
            if not dto.source.items:
                raise AmountSourceError("items must not be empty")
            if dto.has_transaction_discount:
                raise ValidationError(
                    "A transaction-level discount cannot be combined with line items; "
                    "discount the lines instead",
                    field="discount_type",
                )
            if not policy.allows_multi_item:
                raise CategoryRuleViolationError(policy.code, "line items")
            lines = tuple(
                self._plan_line(index, item, policy, places)
                for index, item in enumerate(dto.source.items)
            )
            amounts = DiscountResult(
                subtotal=sum((r.subtotal for _, r in lines), ZERO),
                discount_amount=sum((r.discount_amount for _, r in lines), ZERO),
                total=sum((r.total for _, r in lines), ZERO),
            )

        payable_id = receivable_id = None
        if isinstance(dto, ExpenseInput):
            paid = None if dto.paid_amount is None else round_money(dto.paid_amount, places)
            split = split_payment(amounts.total, paid)
            require_contact_for_payable(split, dto.create_debt_for_remaining, dto.contact_id)
            if payable_due(split, dto.create_debt_for_remaining):
                payable_id = _uuid4()
        else:
            split = split_payment(amounts.total)
            if isinstance(dto, IncomeInput) and dto.create_receivable:
                if amounts.total <= 0:
                    raise InvalidAmountError("amount", amounts.total)
                require_contact_for_receivable(dto.contact_id)
                receivable_id = _uuid4()

        currency = None
        if dto.currency is not None:
            try:
                currency = normalize_currency_code(dto.currency)
            except ValueError as exc:
                raise ValidationError(str(exc), field="currency") from exc

        return PostingPlan(
            transaction_id=_uuid4(),
            transaction_type=txn_type,
            branch_id=branch_id,
            policy=policy,
            payment_method=payment_method,
            amounts=amounts,
            split=split,
            lines=lines,
            currency=currency,
            payable_id=payable_id,
            receivable_id=receivable_id,
            request=dto,
        )

    def _payment_method(
        self, value: PaymentMethod | str | None, txn_type: TransactionType
    ) -> PaymentMethod | None:
        if value is None:
            if txn_type is TransactionType.INCOME:
                raise InvalidPaymentMethodError(None, txn_type.value)
            return None
        try:
            return PaymentMethod(value)
        except ValueError:
            raise InvalidPaymentMethodError(str(value), txn_type.value) from None

    def _check_date(self, value: date) -> None:
        today = self._clock.today()
        if value > today:
            raise FutureDateError(value.isoformat(), today.isoformat())

    @staticmethod
    def _check_employee_rule(policy: CategoryPolicy, employee_id: UUID | None) -> None:
        if policy.requires_employee and employee_id is None:
            raise EmployeeRequiredError(policy.code)
        if not policy.requires_employee and employee_id is not None:
            raise CategoryRuleViolationError(policy.code, "an employee reference")

    @staticmethod
    def _discount_type(value: DiscountType | str | None, field: str) -> DiscountType | None:
        if value is None:
            return None
        try:
            return DiscountType(value)
        except ValueError:
            raise ValidationError(f"Unknown discount type {value!r}", field=field) from None

    def _flat_amounts(
        self, dto: PostingInput, policy: CategoryPolicy, places: int
    ) -> DiscountResult:
        amount = dto.source.amount
        # Positivity is judged on the stored precision
        if amount is None or round_money(amount, places) <= 0:
            raise InvalidAmountError("amount", amount)
        if not dto.has_transaction_discount:
            return calculate_discount(amount, decimal_places=places)
        if not policy.allows_discount:
            raise CategoryRuleViolationError(policy.code, "discounts")
        if dto.discount_value < 0:
            raise ValidationError("discount_value must not be negative", field="discount_value")
        return calculate_discount(
            amount,
            self._discount_type(dto.discount_type, "discount_type"),
            dto.discount_value,
            decimal_places=places,
        )

    def _plan_line(
        self, index: int, item: LineItemInput, policy: CategoryPolicy, places: int
    ) -> tuple[LineItemInput, DiscountResult]:
        try:
            operation = OperationType(item.operation_type)
        except ValueError:
            raise InvalidLineItemError(index, f"unknown operation {item.operation_type!r}") from None
        if item.quantity is None or item.quantity <= 0:
            raise InvalidLineItemError(index, "quantity must be positive")
        if item.unit_price is not None and item.unit_price < 0:
            raise InvalidLineItemError(index, "unit_price must not be negative")
        if operation is OperationType.PURCHASE and item.unit_price is None:
            raise MissingUnitPriceError(str(item.inventory_item_id))

        discount_type = None
        if item.discount_type is not None and item.discount_value is not None:
            if not policy.allows_discount:
                raise CategoryRuleViolationError(policy.code, "discounts")
            if item.discount_value < 0:
                raise InvalidLineItemError(index, "discount_value must not be negative")
            discount_type = self._discount_type(item.discount_type, f"items[{index}].discount_type")

        normalized = replace(
            item,
            operation_type=operation,
            discount_type=discount_type,
            discount_value=item.discount_value if discount_type is not None else None,
        )
        result = calculate_item_total(
            item.quantity,
            item.unit_price if item.unit_price is not None else ZERO,
            discount_type,
            normalized.discount_value,
            decimal_places=places,
        )
        return normalized, result

    # ------------------------------------------------------------------
    # Persisting (inside the unit of work)
    # ------------------------------------------------------------------

    def _persist(self, session: Session, plan: PostingPlan, caller: Caller) -> PostingOutcome:
        dto = plan.request
        posting = self._config.posting
        spawner = DebtSpawner(session, self._clock)

        # Reference reads before any write
        if dto.employee_id is not None:
            self._check_employee(session, dto.employee_id)
        if dto.contact_id is not None:
            spawner.validate_contact(dto.contact_id, plan.branch_id)
        currency = (
            plan.currency
            or self._currency_lookup(session).default_currency_code()
            or posting.fallback_currency
        )

        now = self._clock.now()
        txn = Transaction(
            id=plan.transaction_id,
            type=plan.transaction_type.value,
            category=plan.policy.code,
            date=dto.date,
            branch_id=plan.branch_id,
            currency=currency,
            amount=plan.split.paid,
            total_amount=plan.split.total,
            paid_amount=plan.split.paid,
            subtotal=plan.amounts.subtotal,
            discount_amount=plan.amounts.discount_amount,
            payment_method=plan.payment_method.value if plan.payment_method else None,
            discount_type=(
                DiscountType(dto.discount_type).value
                if isinstance(dto.source, FlatAmount) and dto.has_transaction_discount
                else None
            ),
            discount_value=(
                dto.discount_value
                if isinstance(dto.source, FlatAmount) and dto.has_transaction_discount
                else None
            ),
            discount_reason=dto.discount_reason,
            linked_payable_id=plan.payable_id,
            linked_receivable_id=plan.receivable_id,
            employee_id=dto.employee_id,
            contact_id=dto.contact_id,
            notes=dto.notes,
            created_at=now,
            updated_at=now,
            created_by_id=caller.id,
        )
        session.add(txn)
        session.flush()

        valuation = InventoryValuationService(
            session, self._clock, cost_decimal_places=posting.cost_decimal_places
        )
        for line_no, (line, amounts) in enumerate(plan.lines, start=1):
            valuation.process_inventory_operation(
                transaction_id=txn.id,
                line_no=line_no,
                line=line,
                amounts=amounts,
                branch_id=plan.branch_id,
                actor_id=caller.id,
            )

        spawned: list[tuple[str, UUID, dict[str, Any]]] = []
        if isinstance(dto, ExpenseInput) and plan.payable_id is not None:
            payable = spawner.spawn_payable_for_partial_payment(
                payable_id=plan.payable_id,
                transaction_id=txn.id,
                branch_id=plan.branch_id,
                split=plan.split,
                contact_id=dto.contact_id,
                date=dto.date,
                category=plan.policy.code,
                actor_id=caller.id,
                due_date=dto.payable_due_date,
                create_debt_for_remaining=dto.create_debt_for_remaining,
            )
            spawned.append((ENTITY_ACCOUNT_PAYABLE, payable.id, debt_snapshot(payable)))
        if isinstance(dto, IncomeInput) and plan.receivable_id is not None:
            receivable = spawner.spawn_receivable_for_income(
                receivable_id=plan.receivable_id,
                transaction_id=txn.id,
                branch_id=plan.branch_id,
                amount=plan.split.total,
                contact_id=dto.contact_id,
                date=dto.date,
                category=plan.policy.code,
                actor_id=caller.id,
                due_date=dto.receivable_due_date,
            )
            spawned.append((ENTITY_ACCOUNT_RECEIVABLE, receivable.id, debt_snapshot(receivable)))

        session.flush()
        session.expire(txn, ["line_items"])
        return PostingOutcome(record=TransactionRecord.from_model(txn), spawned=tuple(spawned))

    def _check_employee(self, session: Session, employee_id: UUID) -> None:
        employee = self._employee_directory(session).get_employee(employee_id)
        if employee is None:
            raise EmployeeNotFoundError(str(employee_id))
        if EmployeeStatus(employee.status) is not EmployeeStatus.ACTIVE:
            raise InactiveEmployeeError(str(employee_id), EmployeeStatus(employee.status).value)

    # ------------------------------------------------------------------
    # Maintenance use cases
    # ------------------------------------------------------------------

    def update_transaction(
        self, transaction_id: UUID, changes: TransactionChanges, caller: Caller
    ) -> TransactionRecord:
        """
        Edit descriptive fields of an unlinked transaction.

        Raises:
            TransactionNotFoundError: Missing or soft-deleted.
            BranchAccessDeniedError: Branch-scoped caller, foreign branch.
            LinkedTransactionImmutableError: Transaction owns a debt record.
        """
        if changes.date is not None:
            self._check_date(changes.date)

        with LogContext.bind(
            correlation_id=str(_uuid4()),
            actor_id=caller.id,
            transaction_id=transaction_id,
            operation="update_transaction",
        ):
            logger.info("transaction_update_started", extra={"fields": list(changes.fields_set())})

            def work(session: Session) -> tuple[TransactionRecord, TransactionRecord]:
                txn = self._load_mutable(session, transaction_id, caller)
                before = TransactionRecord.from_model(txn)
                txn_type = TransactionType(txn.type)

                if changes.category is not None:
                    policy = self._config.categories.resolve(changes.category, txn_type)
                    self._check_existing_shape(txn, policy)
                    txn.category = policy.code
                if changes.payment_method is not None:
                    txn.payment_method = self._payment_method(changes.payment_method, txn_type).value
                if changes.date is not None:
                    txn.date = changes.date
                if changes.notes is not None:
                    txn.notes = changes.notes
                if changes.discount_reason is not None:
                    txn.discount_reason = changes.discount_reason

                txn.updated_at = self._clock.now()
                txn.updated_by_id = caller.id
                session.flush()
                return before, TransactionRecord.from_model(txn)

            try:
                before, after = self._uow.run(work)
            except LedgerError as exc:
                logger.warning("transaction_update_rejected", extra={"error_code": exc.code})
                raise

            logger.info("transaction_updated", extra={"fields": list(changes.fields_set())})
            self._effects.after_update(before, after, caller.id)
            return after

    def remove_transaction(self, transaction_id: UUID, caller: Caller) -> TransactionRecord:
        """Soft-delete an unlinked transaction; stock and debts are untouched."""
        with LogContext.bind(
            correlation_id=str(_uuid4()),
            actor_id=caller.id,
            transaction_id=transaction_id,
            operation="remove_transaction",
        ):

            def work(session: Session) -> TransactionRecord:
                txn = self._load_mutable(session, transaction_id, caller)
                now = self._clock.now()
                txn.deleted_at = now
                txn.updated_at = now
                txn.updated_by_id = caller.id
                session.flush()
                return TransactionRecord.from_model(txn)

            try:
                record = self._uow.run(work)
            except LedgerError as exc:
                logger.warning("transaction_remove_rejected", extra={"error_code": exc.code})
                raise

            logger.info("transaction_removed")
            self._effects.after_delete(record, caller.id)
            return record

    def _load_mutable(self, session: Session, transaction_id: UUID, caller: Caller) -> Transaction:
        txn = session.get(Transaction, transaction_id, with_for_update=True)
        if txn is None or txn.is_deleted:
            raise TransactionNotFoundError(str(transaction_id))
        validate_branch_access(caller, txn.branch_id)
        if txn.is_linked:
            linked_kind = "payable" if txn.linked_payable_id is not None else "receivable"
            linked_id = txn.linked_payable_id or txn.linked_receivable_id
            raise LinkedTransactionImmutableError(str(txn.id), linked_kind, str(linked_id))
        return txn

    @staticmethod
    def _check_existing_shape(txn: Transaction, policy: CategoryPolicy) -> None:
        """A new category must permit what the posted transaction already has."""
        if txn.line_items and not policy.allows_multi_item:
            raise CategoryRuleViolationError(policy.code, "line items")
        discounted = (txn.discount_amount or Decimal("0")) > 0 or any(
            (li.discount_amount or Decimal("0")) > 0 for li in txn.line_items
        )
        if discounted and not policy.allows_discount:
            raise CategoryRuleViolationError(policy.code, "discounts")
        TransactionPostingService._check_employee_rule(policy, txn.employee_id)
