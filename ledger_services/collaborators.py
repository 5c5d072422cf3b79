"""
Module: ledger_services.collaborators
Responsibility: Interfaces of the external collaborators the posting core
    calls, plus the default implementations used when none are injected.
Architecture position: Services.  Protocols only describe the calls the core
    makes; transports, push channels and audit stores live elsewhere.

Collaborators:
    AuditRecorder            log_create / log_update / log_delete (post-commit)
    NotificationDispatcher   notify_new_transaction (post-commit, best-effort)
    LiveUpdateBroadcaster    emit_new_transaction / emit_transaction_update
    EmployeeDirectory        get_employee (read-only, inside the unit of work)
    CurrencyLookup           default_currency_code (read-only, inside the unit)

Defaults:
    StructuredLogAuditRecorder writes audit lines through the structured
    logger; the null dispatcher and broadcaster do nothing; the SQL directory
    and currency lookup read the posting session.
"""

from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import TransactionRecord
from ledger_kernel.domain.values import EmployeeStatus
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.directory import CurrencySetting, Employee

logger = get_logger("services.audit")


@dataclass(frozen=True, slots=True)
class EmployeeInfo:
    id: UUID
    name: str
    status: EmployeeStatus
    branch_id: UUID | None = None


@runtime_checkable
class AuditRecorder(Protocol):
    def log_create(self, user_id: UUID, entity_type: str, entity_id: UUID, snapshot: Any) -> None: ...

    def log_update(
        self, user_id: UUID, entity_type: str, entity_id: UUID, before: Any, after: Any
    ) -> None: ...

    def log_delete(self, user_id: UUID, entity_type: str, entity_id: UUID, snapshot: Any) -> None: ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    def notify_new_transaction(self, transaction: TransactionRecord) -> None: ...


@runtime_checkable
class LiveUpdateBroadcaster(Protocol):
    def emit_new_transaction(self, transaction: TransactionRecord) -> None: ...

    def emit_transaction_update(self, transaction: TransactionRecord) -> None: ...


@runtime_checkable
class EmployeeDirectory(Protocol):
    def get_employee(self, employee_id: UUID) -> EmployeeInfo | None: ...


@runtime_checkable
class CurrencyLookup(Protocol):
    def default_currency_code(self) -> str | None: ...


def snapshot_of(value: Any) -> Any:
    """Plain-dict view of a record for audit payloads."""
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return value


class StructuredLogAuditRecorder:
    """Audit trail as structured log lines under ``ledger.services.audit``."""

    def log_create(self, user_id, entity_type, entity_id, snapshot) -> None:
        logger.info(
            "audit_create",
            extra={
                "audit_user_id": str(user_id),
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "snapshot": snapshot_of(snapshot),
            },
        )

    def log_update(self, user_id, entity_type, entity_id, before, after) -> None:
        logger.info(
            "audit_update",
            extra={
                "audit_user_id": str(user_id),
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "before": snapshot_of(before),
                "after": snapshot_of(after),
            },
        )

    def log_delete(self, user_id, entity_type, entity_id, snapshot) -> None:
        logger.info(
            "audit_delete",
            extra={
                "audit_user_id": str(user_id),
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "snapshot": snapshot_of(snapshot),
            },
        )


class NullNotificationDispatcher:
    def notify_new_transaction(self, transaction: TransactionRecord) -> None:
        return None


class NullLiveUpdateBroadcaster:
    def emit_new_transaction(self, transaction: TransactionRecord) -> None:
        return None

    def emit_transaction_update(self, transaction: TransactionRecord) -> None:
        return None


class SqlEmployeeDirectory:
    """Employee lookups against the posting session."""

    def __init__(self, session: Session):
        self.session = session

    def get_employee(self, employee_id: UUID) -> EmployeeInfo | None:
        employee = self.session.scalars(
            select(Employee).where(
                Employee.id == employee_id,
                Employee.deleted_at.is_(None),
            )
        ).one_or_none()
        if employee is None:
            return None
        return EmployeeInfo(
            id=employee.id,
            name=employee.name,
            status=EmployeeStatus(employee.status),
            branch_id=employee.branch_id,
        )


class SqlCurrencyLookup:
    """The single active default currency, read inside the posting session."""

    def __init__(self, session: Session):
        self.session = session

    def default_currency_code(self) -> str | None:
        return self.session.scalars(
            select(CurrencySetting.code)
            .where(CurrencySetting.is_default.is_(True), CurrencySetting.is_active.is_(True))
            .limit(1)
        ).first()
