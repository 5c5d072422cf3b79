"""
Module: ledger_kernel.selectors.transaction_selector
Responsibility: Read-only queries over transactions: single lookup, filtered
    and paginated listing, and per-day totals.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Soft-deleted transactions are invisible to every query here.
    - Listing order is date desc, then created_at desc, then id.
    - Branch scoping is decided by the caller; ``filters.branch_id`` is
      applied exactly as given.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, or_, select

from ledger_kernel.domain.dtos import DailySummary, TransactionFilters, TransactionRecord
from ledger_kernel.domain.values import PaymentMethod, TransactionType
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.selectors.base import BaseSelector


class TransactionSelector(BaseSelector[Transaction]):
    """Queries over live (not soft-deleted) transactions."""

    def _live(self) -> Select:
        return select(Transaction).where(Transaction.deleted_at.is_(None))

    def get(self, transaction_id: UUID) -> TransactionRecord | None:
        model = self.session.scalars(
            self._live().where(Transaction.id == transaction_id)
        ).one_or_none()
        return TransactionRecord.from_model(model) if model is not None else None

    def _apply_filters(self, stmt: Select, filters: TransactionFilters) -> Select:
        if filters.branch_id is not None:
            stmt = stmt.where(Transaction.branch_id == filters.branch_id)
        if filters.type is not None:
            stmt = stmt.where(Transaction.type == TransactionType(filters.type).value)
        if filters.category:
            stmt = stmt.where(Transaction.category == filters.category)
        if filters.payment_method is not None:
            stmt = stmt.where(
                Transaction.payment_method == PaymentMethod(filters.payment_method).value
            )
        if filters.start_date is not None:
            stmt = stmt.where(Transaction.date >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(Transaction.date <= filters.end_date)
        if filters.search:
            needle = filters.search.lower()
            stmt = stmt.where(
                or_(
                    func.lower(Transaction.category).contains(needle, autoescape=True),
                    func.lower(Transaction.notes).contains(needle, autoescape=True),
                )
            )
        if filters.employee_id is not None:
            stmt = stmt.where(Transaction.employee_id == filters.employee_id)
        return stmt

    def list_page(
        self,
        filters: TransactionFilters,
        offset: int,
        limit: int,
    ) -> tuple[list[TransactionRecord], int]:
        """One page of matching transactions plus the total match count."""
        stmt = self._apply_filters(self._live(), filters)

        total = self.session.scalar(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        )

        rows = self.session.scalars(
            stmt.order_by(
                Transaction.date.desc(), Transaction.created_at.desc(), Transaction.id
            )
            .offset(offset)
            .limit(limit)
        ).all()

        return [TransactionRecord.from_model(m) for m in rows], int(total or 0)

    def _sum_amount(self, on_date: date, branch_id: UUID | None, *criteria) -> Decimal:
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.deleted_at.is_(None),
            Transaction.date == on_date,
            *criteria,
        )
        if branch_id is not None:
            stmt = stmt.where(Transaction.branch_id == branch_id)
        value = self.session.scalar(stmt)
        return Decimal(str(value)) if value is not None else Decimal("0")

    def daily_totals(self, on_date: date, branch_id: UUID | None) -> DailySummary:
        income = Transaction.type == TransactionType.INCOME.value
        income_cash = self._sum_amount(
            on_date, branch_id, income, Transaction.payment_method == PaymentMethod.CASH.value
        )
        income_master = self._sum_amount(
            on_date, branch_id, income, Transaction.payment_method == PaymentMethod.MASTER.value
        )
        total_income = self._sum_amount(on_date, branch_id, income)
        total_expense = self._sum_amount(
            on_date, branch_id, Transaction.type == TransactionType.EXPENSE.value
        )
        return DailySummary(
            date=on_date,
            branch_id=branch_id,
            income_cash=income_cash,
            income_master=income_master,
            total_income=total_income,
            total_expense=total_expense,
        )
