"""
Module: ledger_services.post_commit
Responsibility: Fire audit, notification and live-update side effects once a
    posting has committed.
Architecture position: Services.  Invoked by the posting orchestrator strictly
    after UnitOfWork.run() has returned.

Invariants enforced:
    - A posting is successful once its atomic unit commits.  No effect here
      can fail it or roll it back: every effect failure is logged as
      ``post_commit_effect_failed`` and swallowed.
    - Effects run inline by default, or on a ``concurrent.futures.Executor``
      when one is supplied.  The caller's LogContext travels with them.

Non-goals:
    - Durable delivery.  There is no outbox; an effect lost to a crash
      between commit and dispatch is not replayed.
"""

import contextvars
from concurrent.futures import Executor, Future
from typing import Any, Callable
from uuid import UUID

from ledger_kernel.domain.dtos import TransactionRecord
from ledger_kernel.logging_config import get_logger
from ledger_services.collaborators import (
    AuditRecorder,
    LiveUpdateBroadcaster,
    NotificationDispatcher,
)

logger = get_logger("services.post_commit")

ENTITY_TRANSACTION = "TRANSACTION"
ENTITY_ACCOUNT_PAYABLE = "ACCOUNT_PAYABLE"
ENTITY_ACCOUNT_RECEIVABLE = "ACCOUNT_RECEIVABLE"


class PostCommitEffects:
    """Best-effort dispatcher for post-commit side effects."""

    def __init__(
        self,
        audit: AuditRecorder,
        notifier: NotificationDispatcher,
        broadcaster: LiveUpdateBroadcaster,
        executor: Executor | None = None,
    ):
        self._audit = audit
        self._notifier = notifier
        self._broadcaster = broadcaster
        self._executor = executor

    def after_create(
        self,
        record: TransactionRecord,
        actor_id: UUID,
        spawned: tuple[tuple[str, UUID, dict[str, Any]], ...] = (),
    ) -> list[Future]:
        futures = [
            self._dispatch(
                "audit_log_create",
                self._audit.log_create, actor_id, ENTITY_TRANSACTION, record.id, record,
            )
        ]
        for entity_type, entity_id, snapshot in spawned:
            futures.append(
                self._dispatch(
                    "audit_log_create",
                    self._audit.log_create, actor_id, entity_type, entity_id, snapshot,
                )
            )
        futures.append(
            self._dispatch("notify_new_transaction", self._notifier.notify_new_transaction, record)
        )
        futures.append(
            self._dispatch("emit_new_transaction", self._broadcaster.emit_new_transaction, record)
        )
        return [f for f in futures if f is not None]

    def after_update(
        self, before: TransactionRecord, after: TransactionRecord, actor_id: UUID
    ) -> list[Future]:
        futures = [
            self._dispatch(
                "audit_log_update",
                self._audit.log_update, actor_id, ENTITY_TRANSACTION, after.id, before, after,
            ),
            self._dispatch(
                "emit_transaction_update", self._broadcaster.emit_transaction_update, after
            ),
        ]
        return [f for f in futures if f is not None]

    def after_delete(self, record: TransactionRecord, actor_id: UUID) -> list[Future]:
        futures = [
            self._dispatch(
                "audit_log_delete",
                self._audit.log_delete, actor_id, ENTITY_TRANSACTION, record.id, record,
            ),
            self._dispatch(
                "emit_transaction_update", self._broadcaster.emit_transaction_update, record
            ),
        ]
        return [f for f in futures if f is not None]

    def _dispatch(self, effect: str, fn: Callable[..., Any], *args: Any) -> Future | None:
        if self._executor is None:
            self._run_safely(effect, fn, *args)
            return None
        ctx = contextvars.copy_context()
        return self._executor.submit(ctx.run, self._run_safely, effect, fn, *args)

    @staticmethod
    def _run_safely(effect: str, fn: Callable[..., Any], *args: Any) -> None:
        try:
            fn(*args)
        except Exception:
            logger.warning(
                "post_commit_effect_failed",
                extra={"effect": effect},
                exc_info=True,
            )
