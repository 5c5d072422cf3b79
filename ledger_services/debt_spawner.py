"""
Module: ledger_services.debt_spawner
Responsibility: Create the payable or receivable a posting gives rise to,
    inside the posting's atomic unit.
Architecture position: Services.  Session-bound, flush-only.

Invariants enforced:
    - A payable is created only for an expense paid in part, and only when
      the caller asked for one; it carries exactly the unpaid remainder.
    - A receivable carries the whole posted amount of the income.
    - Both need a counterparty visible from the posting branch.
    - The debt's id is chosen by the orchestrator before the transaction row
      is written, so the two rows reference each other from the start.

Failure modes:
    - ContactRequiredError when a debt is due but no contact was given.
    - ContactNotFoundError for an unknown, deleted or foreign contact.
    - InvalidAmountError for a receivable of zero.
"""

import datetime as dt
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select

from ledger_engines.payment_split import PaymentSplit
from ledger_kernel.db.base import Base
from ledger_kernel.domain.values import derive_debt_status
from ledger_kernel.exceptions import (
    ContactNotFoundError,
    ContactRequiredError,
    InvalidAmountError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.debt import AccountPayable, AccountReceivable
from ledger_kernel.models.directory import Contact
from ledger_kernel.services.base import BaseService

logger = get_logger("services.debt_spawner")


def payable_due(split: PaymentSplit, create_debt_for_remaining: bool) -> bool:
    return create_debt_for_remaining and split.is_partial


def require_contact_for_payable(
    split: PaymentSplit, create_debt_for_remaining: bool, contact_id: UUID | None
) -> None:
    """Reject a partially paid expense whose remainder has nobody to owe."""
    if payable_due(split, create_debt_for_remaining) and contact_id is None:
        raise ContactRequiredError(
            f"expense leaves {split.remaining} unpaid and a payable needs a counterparty"
        )


def require_contact_for_receivable(contact_id: UUID | None) -> None:
    if contact_id is None:
        raise ContactRequiredError("a receivable needs a counterparty")


def debt_snapshot(debt: AccountPayable | AccountReceivable) -> dict:
    """Column values of a debt row, for audit payloads."""
    return {
        "id": debt.id,
        "branch_id": debt.branch_id,
        "contact_id": debt.contact_id,
        "original_amount": debt.original_amount,
        "remaining_amount": debt.remaining_amount,
        "status": debt.status,
        "date": debt.date,
        "due_date": debt.due_date,
        "description": debt.description,
        "linked_transaction_id": debt.linked_transaction_id,
    }


class DebtSpawner(BaseService[Base]):
    """Writes the debt side of a posting."""

    def validate_contact(self, contact_id: UUID, branch_id: UUID) -> Contact:
        """A live contact that is shared or belongs to ``branch_id``."""
        contact = self.session.scalars(
            select(Contact).where(
                Contact.id == contact_id,
                Contact.deleted_at.is_(None),
                or_(Contact.branch_id.is_(None), Contact.branch_id == branch_id),
            )
        ).one_or_none()
        if contact is None:
            raise ContactNotFoundError(str(contact_id))
        return contact

    def spawn_payable_for_partial_payment(
        self,
        *,
        payable_id: UUID,
        transaction_id: UUID,
        branch_id: UUID,
        split: PaymentSplit,
        contact_id: UUID | None,
        date: dt.date,
        category: str,
        actor_id: UUID,
        due_date: dt.date | None = None,
        notes: str | None = None,
        create_debt_for_remaining: bool = True,
    ) -> AccountPayable | None:
        """
        Payable for the unpaid remainder of an expense, or None when the
        expense was paid in full or no debt was requested.
        """
        if not payable_due(split, create_debt_for_remaining):
            return None
        require_contact_for_payable(split, create_debt_for_remaining, contact_id)
        self.validate_contact(contact_id, branch_id)

        payable = AccountPayable(
            id=payable_id,
            branch_id=branch_id,
            contact_id=contact_id,
            original_amount=split.remaining,
            remaining_amount=split.remaining,
            status=derive_debt_status(split.remaining, split.remaining).value,
            date=date,
            due_date=due_date,
            description=f"Auto-created from {category} expense",
            notes=notes or f"Remaining {split.remaining} of {split.total} total",
            linked_transaction_id=transaction_id,
            created_at=self.clock.now(),
            updated_at=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(payable)
        self.session.flush()

        logger.info(
            "payable_spawned",
            extra={
                "payable_id": str(payable_id),
                "contact_id": str(contact_id),
                "remaining_amount": str(split.remaining),
            },
        )
        return payable

    def spawn_receivable_for_income(
        self,
        *,
        receivable_id: UUID,
        transaction_id: UUID,
        branch_id: UUID,
        amount: Decimal,
        contact_id: UUID | None,
        date: dt.date,
        category: str,
        actor_id: UUID,
        due_date: dt.date | None = None,
        notes: str | None = None,
    ) -> AccountReceivable:
        """Receivable for the whole amount of an income posting."""
        if amount <= 0:
            raise InvalidAmountError("amount", amount)
        require_contact_for_receivable(contact_id)
        self.validate_contact(contact_id, branch_id)

        receivable = AccountReceivable(
            id=receivable_id,
            branch_id=branch_id,
            contact_id=contact_id,
            original_amount=amount,
            remaining_amount=amount,
            status=derive_debt_status(amount, amount).value,
            date=date,
            due_date=due_date,
            description=f"Auto-created from {category} income",
            notes=notes,
            linked_transaction_id=transaction_id,
            created_at=self.clock.now(),
            updated_at=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(receivable)
        self.session.flush()

        logger.info(
            "receivable_spawned",
            extra={
                "receivable_id": str(receivable_id),
                "contact_id": str(contact_id),
                "original_amount": str(amount),
            },
        )
        return receivable
