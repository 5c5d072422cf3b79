"""
Module: ledger_services.transaction_queries
Responsibility: Branch-aware read use cases over transactions: paginated
    listing, single lookup and the per-day summary.
Architecture position: Services.  Opens a short-lived read session per call
    and delegates the SQL to TransactionSelector.

Invariants enforced:
    - Branch-scoped callers only ever see their own branch.
    - Soft-deleted transactions are never returned.
    - Page size is clamped to the configured maximum.
"""

from dataclasses import replace
from datetime import date
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config import LedgerConfig, get_active_config
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    DailySummary,
    TransactionFilters,
    TransactionPage,
    TransactionRecord,
)
from ledger_kernel.domain.values import Caller
from ledger_kernel.exceptions import TransactionNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_services.branch_resolver import get_effective_branch_filter, validate_branch_access

logger = get_logger("services.transaction_queries")


class TransactionQueryService:
    """Read side of the ledger."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()

    def find_all(
        self,
        caller: Caller,
        filters: TransactionFilters | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> TransactionPage:
        filters = filters or TransactionFilters()
        settings = self._config.posting

        page = max(page, 1)
        limit = settings.default_page_size if limit is None else limit
        limit = min(max(limit, 1), settings.max_page_size)

        branch_id = get_effective_branch_filter(caller, filters.branch_id)
        category = filters.category
        if category:
            # Aliases list the same rows as their code
            category = self._config.categories.normalize(category) or category
        filters = replace(filters, branch_id=branch_id, category=category)

        with self._session_factory() as session:
            rows, total = TransactionSelector(session).list_page(
                filters, offset=(page - 1) * limit, limit=limit
            )

        logger.debug(
            "transactions_listed",
            extra={"page": page, "limit": limit, "total": total, "returned": len(rows)},
        )
        return TransactionPage(items=tuple(rows), total=total, page=page, limit=limit)

    def find_one(self, transaction_id: UUID, caller: Caller) -> TransactionRecord:
        with self._session_factory() as session:
            record = TransactionSelector(session).get(transaction_id)
        if record is None:
            raise TransactionNotFoundError(str(transaction_id))
        validate_branch_access(caller, record.branch_id)
        return record

    def get_summary(
        self,
        caller: Caller,
        on_date: date | None = None,
        branch_id: UUID | None = None,
    ) -> DailySummary:
        """Income (cash / card / total) and expense totals for one day."""
        effective_branch = get_effective_branch_filter(caller, branch_id)
        day = on_date or self._clock.today()
        with self._session_factory() as session:
            return TransactionSelector(session).daily_totals(day, effective_branch)
