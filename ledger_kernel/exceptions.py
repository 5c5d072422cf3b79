"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A posting request fails for one of a handful of reasons, and the transport
layer maps each reason to a different response. Parsing message strings for
that is fragile, so every error here:
  1. Has its own class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Has an HTTP_STATUS hint for the transport layer
  4. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        service.create_expense(dto, caller)
    except InsufficientStockError as e:
        return {"error": e.code, "available": e.available, "requested": e.requested}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- ValidationError                         400
    |   +-- InvalidAmountError
    |   +-- AmountSourceError
    |   +-- InvalidLineItemError
    |   +-- UnknownCategoryError
    |   +-- CategoryRuleViolationError
    |   +-- EmployeeRequiredError
    |   +-- InactiveEmployeeError
    |   +-- InvalidPaymentMethodError
    |   +-- FutureDateError
    |   +-- PaidAmountOutOfRangeError
    |   +-- ContactRequiredError
    |   +-- MissingUnitPriceError
    |   +-- InsufficientStockError
    |   +-- BranchRequiredError
    |   +-- ImmutableFieldError
    |
    +-- NotFoundError                           404
    |   +-- InventoryItemNotFoundError
    |   +-- SubUnitNotFoundError
    |   +-- ContactNotFoundError
    |   +-- EmployeeNotFoundError
    |   +-- TransactionNotFoundError
    |
    +-- ConflictError                           409
    |   +-- LinkedTransactionImmutableError
    |   +-- ImmutabilityViolationError
    |
    +-- AuthorizationError                      403
    |   +-- BranchAccessDeniedError
    |
    +-- PersistenceError                        503
        +-- CommitRetriesExhaustedError

===============================================================================
PROPAGATION
===============================================================================

Validation, not-found, conflict and authorization errors abort the atomic
unit before commit and are never retried: they describe caller input, not
transient faults. Only PersistenceError reflects infrastructure, and it is
raised after the unit of work has exhausted its bounded retries.

===============================================================================
"""

from decimal import Decimal


class LedgerError(Exception):
    """
    Base exception for all ledger errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification and an ``http_status`` hint for the transport layer.
    """

    code: str = "LEDGER_ERROR"
    http_status: int = 500


# Validation errors (caller input)


class ValidationError(LedgerError):
    """Base exception for rejected posting input."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidAmountError(ValidationError):
    """A monetary amount is missing, zero or negative where it must be positive."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: Decimal | None):
        self.value = value
        super().__init__(f"{field} must be a positive amount, got {value}", field=field)


class AmountSourceError(ValidationError):
    """Neither or both of the flat amount and the line items were supplied."""

    code: str = "AMOUNT_SOURCE_INVALID"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Exactly one of amount or items is required: {reason}")


class InvalidLineItemError(ValidationError):
    """A line item is internally inconsistent (quantity, price, operation)."""

    code: str = "INVALID_LINE_ITEM"

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Line item {index} is invalid: {reason}", field=f"items[{index}]")


class UnknownCategoryError(ValidationError):
    """Category is not part of the closed taxonomy for the transaction type."""

    code: str = "UNKNOWN_CATEGORY"

    def __init__(self, category: str | None, transaction_type: str):
        self.category = category
        self.transaction_type = transaction_type
        super().__init__(
            f"Category {category!r} is not a valid {transaction_type} category",
            field="category",
        )


class CategoryRuleViolationError(ValidationError):
    """The category policy forbids a feature the request uses."""

    code: str = "CATEGORY_RULE_VIOLATION"

    def __init__(self, category: str, rule: str):
        self.category = category
        self.rule = rule
        super().__init__(f"Category {category} does not permit {rule}", field="category")


class EmployeeRequiredError(ValidationError):
    """The category requires an employee reference and none was supplied."""

    code: str = "EMPLOYEE_REQUIRED"

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Category {category} requires an employee", field="employee_id")


class InactiveEmployeeError(ValidationError):
    """The referenced employee is not ACTIVE (e.g. resigned)."""

    code: str = "EMPLOYEE_INACTIVE"

    def __init__(self, employee_id: str, status: str):
        self.employee_id = employee_id
        self.status = status
        super().__init__(
            f"Employee {employee_id} has status {status}; salary postings require ACTIVE",
            field="employee_id",
        )


class InvalidPaymentMethodError(ValidationError):
    """Payment method is missing or not valid for the transaction type."""

    code: str = "INVALID_PAYMENT_METHOD"

    def __init__(self, payment_method: str | None, transaction_type: str):
        self.payment_method = payment_method
        self.transaction_type = transaction_type
        super().__init__(
            f"Payment method {payment_method!r} is not valid for {transaction_type}",
            field="payment_method",
        )


class FutureDateError(ValidationError):
    """Transaction date lies after the current business date."""

    code: str = "FUTURE_DATE"

    def __init__(self, value: str, today: str):
        self.value = value
        self.today = today
        super().__init__(f"Transaction date {value} is after today ({today})", field="date")


class PaidAmountOutOfRangeError(ValidationError):
    """Paid amount is negative or exceeds the total amount."""

    code: str = "PAID_AMOUNT_OUT_OF_RANGE"

    def __init__(self, paid_amount: Decimal, total_amount: Decimal):
        self.paid_amount = paid_amount
        self.total_amount = total_amount
        super().__init__(
            f"Paid amount {paid_amount} must be between 0 and {total_amount}",
            field="paid_amount",
        )


class ContactRequiredError(ValidationError):
    """A counterparty is required to record an outstanding balance."""

    code: str = "CONTACT_REQUIRED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"contact_id is required: {reason}", field="contact_id")


class MissingUnitPriceError(ValidationError):
    """A PURCHASE operation was requested without a unit price."""

    code: str = "MISSING_UNIT_PRICE"

    def __init__(self, inventory_item_id: str):
        self.inventory_item_id = inventory_item_id
        super().__init__(
            f"Unit price is required to purchase inventory item {inventory_item_id}",
            field="unit_price",
        )


class InsufficientStockError(ValidationError):
    """A CONSUMPTION requested more than the item has on hand."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, inventory_item_id: str, available: Decimal, requested: Decimal):
        self.inventory_item_id = inventory_item_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for item {inventory_item_id}: "
            f"available {available}, requested {requested}"
        )


class BranchRequiredError(ValidationError):
    """No usable branch could be resolved for the caller."""

    code: str = "BRANCH_REQUIRED"

    def __init__(self, role: str, reason: str):
        self.role = role
        self.reason = reason
        super().__init__(reason, field="branch_id")


class ImmutableFieldError(ValidationError):
    """A change touches a field that cannot be edited after posting."""

    code: str = "IMMUTABLE_FIELD"

    def __init__(self, field: str):
        super().__init__(f"Field {field} cannot be changed after posting", field=field)


# Not-found errors


class NotFoundError(LedgerError):
    """Base exception for missing referenced entities."""

    code: str = "NOT_FOUND"
    http_status: int = 404


class InventoryItemNotFoundError(NotFoundError):
    """Inventory item does not exist in the posting branch."""

    code: str = "INVENTORY_ITEM_NOT_FOUND"

    def __init__(self, inventory_item_id: str, branch_id: str):
        self.inventory_item_id = inventory_item_id
        self.branch_id = branch_id
        super().__init__(
            f"Inventory item {inventory_item_id} not found in branch {branch_id}"
        )


class SubUnitNotFoundError(NotFoundError):
    """Sub-unit does not exist for the given inventory item."""

    code: str = "SUB_UNIT_NOT_FOUND"

    def __init__(self, sub_unit_id: str, inventory_item_id: str):
        self.sub_unit_id = sub_unit_id
        self.inventory_item_id = inventory_item_id
        super().__init__(
            f"Sub-unit {sub_unit_id} not found for inventory item {inventory_item_id}"
        )


class ContactNotFoundError(NotFoundError):
    """Contact does not exist or is not visible from the posting branch."""

    code: str = "CONTACT_NOT_FOUND"

    def __init__(self, contact_id: str):
        self.contact_id = contact_id
        super().__init__(f"Contact not found: {contact_id}")


class EmployeeNotFoundError(NotFoundError):
    """Employee does not exist."""

    code: str = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee not found: {employee_id}")


class TransactionNotFoundError(NotFoundError):
    """Transaction does not exist or has been soft-deleted."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


# Conflict errors


class ConflictError(LedgerError):
    """Base exception for state conflicts."""

    code: str = "CONFLICT"
    http_status: int = 409


class LinkedTransactionImmutableError(ConflictError):
    """
    Transaction owns a payable or receivable and cannot be changed.

    The debt record was derived from the transaction's amounts at posting
    time; editing or deleting the transaction would orphan it.
    """

    code: str = "LINKED_TRANSACTION_IMMUTABLE"

    def __init__(self, transaction_id: str, linked_kind: str, linked_id: str):
        self.transaction_id = transaction_id
        self.linked_kind = linked_kind
        self.linked_id = linked_id
        super().__init__(
            f"Transaction {transaction_id} is linked to {linked_kind} {linked_id} "
            f"and cannot be modified"
        )


class ImmutabilityViolationError(ConflictError):
    """An append-only record was about to be updated or deleted."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


# Authorization errors


class AuthorizationError(LedgerError):
    """Base exception for branch-scope violations."""

    code: str = "FORBIDDEN"
    http_status: int = 403


class BranchAccessDeniedError(AuthorizationError):
    """A branch-scoped caller addressed a branch other than their own."""

    code: str = "BRANCH_ACCESS_DENIED"

    def __init__(self, user_id: str, branch_id: str):
        self.user_id = user_id
        self.branch_id = branch_id
        super().__init__(
            f"Access denied: user {user_id} cannot access branch {branch_id}"
        )


# Persistence errors


class PersistenceError(LedgerError):
    """Base exception for infrastructure failures during the atomic commit."""

    code: str = "PERSISTENCE_ERROR"
    http_status: int = 503


class CommitRetriesExhaustedError(PersistenceError):
    """Transient database failures persisted past the retry budget."""

    code: str = "COMMIT_RETRIES_EXHAUSTED"

    def __init__(self, attempts: int, last_error: str):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Atomic commit failed after {attempts} attempt(s): {last_error}"
        )
