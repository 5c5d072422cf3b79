"""
ledger_services -- Package init and public API.

Responsibility:
    Stateful use cases that compose the pure engines (ledger_engines/) with
    database sessions, the category policy table and the external
    collaborators.  This is the only layer that opens a unit of work or
    fires post-commit side effects.

Architecture position:
    Services -- stateful orchestration over engines + kernel + config.

    Dependency direction (enforced by tests/architecture/test_package_boundaries.py):
        ledger_services/ -> ledger_engines/, ledger_kernel/, ledger_config/  (allowed)
        ledger_engines/  -> ledger_services/                                 (FORBIDDEN)
        ledger_kernel/   -> ledger_services/, ledger_config/                 (FORBIDDEN)

Failure modes:
    - ImportError at startup if a service's dependency graph is broken.
"""

from ledger_kernel.logging_config import get_logger

logger = get_logger("services")

from ledger_services.branch_resolver import (
    get_effective_branch_filter,
    resolve_branch_id,
    validate_branch_access,
)
from ledger_services.collaborators import (
    AuditRecorder,
    CurrencyLookup,
    EmployeeDirectory,
    EmployeeInfo,
    LiveUpdateBroadcaster,
    NotificationDispatcher,
    StructuredLogAuditRecorder,
)
from ledger_services.debt_spawner import DebtSpawner
from ledger_services.inventory_valuation import InventoryValuationService
from ledger_services.post_commit import PostCommitEffects
from ledger_services.posting_orchestrator import TransactionPostingService, build_unit_of_work
from ledger_services.transaction_queries import TransactionQueryService

__all__ = [
    "AuditRecorder",
    "CurrencyLookup",
    "DebtSpawner",
    "EmployeeDirectory",
    "EmployeeInfo",
    "InventoryValuationService",
    "LiveUpdateBroadcaster",
    "NotificationDispatcher",
    "PostCommitEffects",
    "StructuredLogAuditRecorder",
    "TransactionPostingService",
    "TransactionQueryService",
    "build_unit_of_work",
    "get_effective_branch_filter",
    "resolve_branch_id",
    "validate_branch_access",
]
