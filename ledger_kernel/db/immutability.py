"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A posting writes a transaction, its line items, stock movements and possibly
a payable/receivable derived from the transaction's amounts.  Editing any of
those rows in place afterwards would make them disagree with each other, so
the only sanctioned changes are:

  - partial edits of descriptive fields on an UNLINKED transaction
  - soft delete (deleted_at) of an UNLINKED transaction

Services already reject forbidden changes with typed errors before touching
the session.  The listeners here catch whatever slips past them (a bug, a
script, a future service) before the SQL reaches the database.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                | Rule
----------------------|---------------------------------------------------
Transaction           | Never hard-deleted.  No update at all once linked
                      | to a payable or receivable.
TransactionLineItem   | Never updated or deleted.
InventoryMovement     | Never updated or deleted.

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    unregister_immutability_listeners()  # TESTS ONLY

===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import (
    ImmutabilityViolationError,
    LinkedTransactionImmutableError,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )


def _changed_fields(target) -> list[str]:
    """Column attributes with pending changes (relationships do not count)."""
    state = inspect(target)
    return [
        prop.key
        for prop in state.mapper.column_attrs
        if prop.key not in _AUDIT_FIELDS and state.attrs[prop.key].history.has_changes()
    ]


def _previous_value(target, key: str):
    """Value the row held before the pending change."""
    hist = get_history(target, key)
    if hist.deleted:
        return hist.deleted[0]
    if hist.unchanged:
        return hist.unchanged[0]
    return None


def _check_transaction_update(mapper, connection, target):
    """Linked transactions are frozen from the moment they are written."""
    payable_id = _previous_value(target, "linked_payable_id")
    receivable_id = _previous_value(target, "linked_receivable_id")
    if payable_id is None and receivable_id is None:
        return

    changed = _changed_fields(target)
    if not changed:
        return

    linked_kind = "payable" if payable_id is not None else "receivable"
    linked_id = payable_id if payable_id is not None else receivable_id
    _blocked("Transaction", target.id, "UPDATE", f"linked_{linked_kind}:{','.join(changed)}")
    raise LinkedTransactionImmutableError(
        transaction_id=str(target.id),
        linked_kind=linked_kind,
        linked_id=str(linked_id),
    )


def _check_transaction_delete(mapper, connection, target):
    _blocked("Transaction", target.id, "DELETE", "hard_delete_forbidden")
    raise ImmutabilityViolationError(
        entity_type="Transaction",
        entity_id=str(target.id),
        reason="Transactions are soft-deleted only",
    )


def _check_line_item_update(mapper, connection, target):
    changed = _changed_fields(target)
    if not changed:
        return
    _blocked("TransactionLineItem", target.id, "UPDATE", ",".join(changed))
    raise ImmutabilityViolationError(
        entity_type="TransactionLineItem",
        entity_id=str(target.id),
        reason=f"Line items are never edited (fields: {', '.join(changed)})",
    )


def _check_line_item_delete(mapper, connection, target):
    _blocked("TransactionLineItem", target.id, "DELETE", "append_only")
    raise ImmutabilityViolationError(
        entity_type="TransactionLineItem",
        entity_id=str(target.id),
        reason="Line items are never deleted",
    )


def _check_movement_update(mapper, connection, target):
    changed = _changed_fields(target)
    if not changed:
        return
    _blocked("InventoryMovement", target.id, "UPDATE", ",".join(changed))
    raise ImmutabilityViolationError(
        entity_type="InventoryMovement",
        entity_id=str(target.id),
        reason="Stock movements are append-only",
    )


def _check_movement_delete(mapper, connection, target):
    _blocked("InventoryMovement", target.id, "DELETE", "append_only")
    raise ImmutabilityViolationError(
        entity_type="InventoryMovement",
        entity_id=str(target.id),
        reason="Stock movements are append-only",
    )


def _listeners():
    from ledger_kernel.models.inventory import InventoryMovement
    from ledger_kernel.models.transaction import Transaction, TransactionLineItem

    return (
        (Transaction, "before_update", _check_transaction_update),
        (Transaction, "before_delete", _check_transaction_delete),
        (TransactionLineItem, "before_update", _check_line_item_update),
        (TransactionLineItem, "before_delete", _check_line_item_delete),
        (InventoryMovement, "before_update", _check_movement_update),
        (InventoryMovement, "before_delete", _check_movement_delete),
    )


def register_immutability_listeners() -> None:
    """Install the ORM immutability listeners.  Safe to call more than once."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the immutability listeners.

    WARNING: Only use this in tests that need to bypass the rules on purpose.
    """
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
