"""
Module: ledger_services.branch_resolver
Responsibility: Decide which branch a caller acts on, for postings and for
    reads, and guard access to existing branch-scoped records.
Architecture position: Services.  Pure functions over Caller; no I/O.

Invariants enforced:
    - A branch-scoped caller (ACCOUNTANT) always acts on their own branch.
      A different requested branch is ignored (logged), never honoured.
    - An unrestricted caller (ADMIN) must name the branch for a posting; for
      reads, no branch means "all branches".
    - A branch-scoped caller touching another branch's record is refused.

Failure modes:
    - BranchRequiredError when no usable branch can be resolved.
    - BranchAccessDeniedError on a cross-branch access.
"""

from uuid import UUID

from ledger_kernel.domain.values import Caller
from ledger_kernel.exceptions import BranchAccessDeniedError, BranchRequiredError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.branch_resolver")


def _own_branch(caller: Caller) -> UUID:
    if caller.branch_id is None:
        raise BranchRequiredError(
            role=caller.role.value,
            reason="Accountant must be assigned to a branch",
        )
    return caller.branch_id


def resolve_branch_id(caller: Caller, requested_branch_id: UUID | None = None) -> UUID:
    """Effective branch for a posting."""
    if caller.is_branch_scoped:
        branch_id = _own_branch(caller)
        if requested_branch_id is not None and requested_branch_id != branch_id:
            logger.warning(
                "branch_override_ignored",
                extra={
                    "requested_branch_id": str(requested_branch_id),
                    "resolved_branch_id": str(branch_id),
                },
            )
        return branch_id

    if requested_branch_id is None:
        raise BranchRequiredError(
            role=caller.role.value,
            reason="branch_id is required when posting as an unrestricted user",
        )
    return requested_branch_id


def validate_branch_access(caller: Caller, branch_id: UUID) -> None:
    """Refuse a branch-scoped caller access to another branch's record."""
    if not caller.is_branch_scoped:
        return
    if caller.branch_id is None or caller.branch_id != branch_id:
        logger.warning(
            "branch_access_denied",
            extra={"target_branch_id": str(branch_id)},
        )
        raise BranchAccessDeniedError(user_id=str(caller.id), branch_id=str(branch_id))


def get_effective_branch_filter(
    caller: Caller, requested_branch_id: UUID | None = None
) -> UUID | None:
    """Branch filter for list/summary reads; None means every branch."""
    if caller.is_branch_scoped:
        return _own_branch(caller)
    return requested_branch_id
