"""
Values -- Enumerations and small immutable value objects of the ledger.

Responsibility:
    The closed vocabularies every layer shares (transaction type, payment
    method, discount type, stock operation, debt status, caller role,
    employee status) plus the ``Caller`` identity and the debt-status rule.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Debt status is derived from amounts, never stored independently:
      remaining 0 => PAID, 0 < remaining < original => PARTIAL, else ACTIVE.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    MASTER = "MASTER"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    AMOUNT = "AMOUNT"


class OperationType(str, Enum):
    """Direction of a stock movement caused by a line item."""

    PURCHASE = "PURCHASE"
    CONSUMPTION = "CONSUMPTION"


class DebtStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class UserRole(str, Enum):
    """
    ADMIN is unrestricted; ACCOUNTANT is scoped to one assigned branch.
    """

    ADMIN = "ADMIN"
    ACCOUNTANT = "ACCOUNTANT"

    @property
    def is_branch_scoped(self) -> bool:
        return self is UserRole.ACCOUNTANT


class EmployeeStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RESIGNED = "RESIGNED"


@dataclass(frozen=True, slots=True)
class Caller:
    """
    The authenticated principal on whose behalf a use case runs.

    Contract:
        Built by the transport layer after authentication; the core trusts
        ``role`` and ``branch_id`` as given.
    """

    id: UUID
    role: UserRole
    branch_id: UUID | None = None

    @property
    def is_branch_scoped(self) -> bool:
        return self.role.is_branch_scoped


def derive_debt_status(original_amount: Decimal, remaining_amount: Decimal) -> DebtStatus:
    """Status of a payable/receivable from its amounts."""
    if remaining_amount < 0 or remaining_amount > original_amount:
        raise ValueError(
            f"remaining_amount {remaining_amount} outside [0, {original_amount}]"
        )
    if remaining_amount == 0:
        return DebtStatus.PAID
    if remaining_amount < original_amount:
        return DebtStatus.PARTIAL
    return DebtStatus.ACTIVE
