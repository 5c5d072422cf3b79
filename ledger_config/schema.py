"""
Configuration schema (``ledger_config.schema``).

Responsibility
--------------
Frozen runtime objects produced by the loader: the category policy table
and the posting settings.  Nothing here reads files.

Invariants enforced
-------------------
* Every object is immutable once built; the table is loaded once per
  process and shared read-only.
* Category codes and aliases are unique across the whole table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Iterator, Mapping

from ledger_kernel.domain.values import TransactionType
from ledger_kernel.exceptions import UnknownCategoryError


@dataclass(frozen=True, slots=True)
class CategoryPolicy:
    """What a category permits on a posting."""

    code: str
    transaction_type: TransactionType
    label: str
    aliases: tuple[str, ...] = ()
    allows_multi_item: bool = False
    allows_discount: bool = False
    requires_employee: bool = False


class CategoryPolicyTable:
    """
    Read-only lookup from category code (or alias) to policy.

    Codes match case-insensitively; aliases match exactly after trimming.
    """

    def __init__(self, policies: tuple[CategoryPolicy, ...]):
        by_code: dict[str, CategoryPolicy] = {}
        by_alias: dict[str, str] = {}
        for policy in policies:
            if policy.code in by_code:
                raise ValueError(f"Duplicate category code: {policy.code}")
            by_code[policy.code] = policy
        for policy in policies:
            for alias in policy.aliases:
                if alias in by_code or alias in by_alias:
                    raise ValueError(f"Category alias {alias!r} is ambiguous")
                by_alias[alias] = policy.code
        self._by_code: Mapping[str, CategoryPolicy] = MappingProxyType(by_code)
        self._by_alias: Mapping[str, str] = MappingProxyType(by_alias)

    def __len__(self) -> int:
        return len(self._by_code)

    def __iter__(self) -> Iterator[CategoryPolicy]:
        return iter(self._by_code.values())

    def __contains__(self, code: object) -> bool:
        return code in self._by_code

    def get(self, code: str) -> CategoryPolicy | None:
        return self._by_code.get(code)

    def normalize(self, raw: str | None) -> str | None:
        """Canonical code for ``raw`` (code or alias), or None if unknown."""
        if raw is None:
            return None
        value = raw.strip()
        if value.upper() in self._by_code:
            return value.upper()
        return self._by_alias.get(value)

    def resolve(self, raw: str | None, transaction_type: TransactionType | str) -> CategoryPolicy:
        """
        Policy for ``raw`` within ``transaction_type``.

        Raises:
            UnknownCategoryError: unknown category, or one that belongs to
                the other transaction type.
        """
        txn_type = TransactionType(transaction_type)
        code = self.normalize(raw)
        policy = self._by_code.get(code) if code is not None else None
        if policy is None or policy.transaction_type is not txn_type:
            raise UnknownCategoryError(category=raw, transaction_type=txn_type.value)
        return policy

    def for_type(self, transaction_type: TransactionType | str) -> tuple[CategoryPolicy, ...]:
        txn_type = TransactionType(transaction_type)
        return tuple(p for p in self._by_code.values() if p.transaction_type is txn_type)


@dataclass(frozen=True, slots=True)
class PostingSettings:
    money_decimal_places: int = 2
    cost_decimal_places: int = 4
    max_commit_attempts: int = 3
    retry_backoff_seconds: float = 0.05
    fallback_currency: str = "USD"
    default_page_size: int = 50
    max_page_size: int = 200


@dataclass(frozen=True, slots=True)
class LedgerConfig:
    """The sole runtime configuration artifact."""

    version: int
    checksum: str
    categories: CategoryPolicyTable
    posting: PostingSettings = field(default_factory=PostingSettings)
