"""ORM models for the ledger."""

from ledger_kernel.models.debt import AccountPayable, AccountReceivable
from ledger_kernel.models.directory import Contact, CurrencySetting, Employee
from ledger_kernel.models.inventory import InventoryItem, InventoryMovement, InventorySubUnit
from ledger_kernel.models.transaction import Transaction, TransactionLineItem

__all__ = [
    "AccountPayable",
    "AccountReceivable",
    "Contact",
    "CurrencySetting",
    "Employee",
    "InventoryItem",
    "InventoryMovement",
    "InventorySubUnit",
    "Transaction",
    "TransactionLineItem",
]
