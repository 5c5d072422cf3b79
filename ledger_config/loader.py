"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
``ledger_config.schema`` objects.  Runtime callers go through
``ledger_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; there are no silent defaults for required keys.
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``code`` / ``transaction_type`` / ``categories``  -> ``KeyError``.
* Unknown transaction type, duplicate code or alias  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    CategoryPolicy,
    CategoryPolicyTable,
    LedgerConfig,
    PostingSettings,
)
from ledger_kernel.db.types import normalize_currency_code
from ledger_kernel.domain.values import TransactionType

_POSTING_KEYS = frozenset(PostingSettings.__dataclass_fields__)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _parse_bool(data: dict[str, Any], key: str, code: str) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise ValueError(f"Category {code}: {key} must be true or false, got {value!r}")
    return value


def parse_category(data: dict[str, Any]) -> CategoryPolicy:
    code = str(data["code"]).strip().upper()
    try:
        transaction_type = TransactionType(str(data["transaction_type"]).upper())
    except ValueError as exc:
        raise ValueError(
            f"Category {code}: unknown transaction_type {data['transaction_type']!r}"
        ) from exc

    aliases = data.get("aliases") or []
    if not isinstance(aliases, list):
        raise ValueError(f"Category {code}: aliases must be a list")

    return CategoryPolicy(
        code=code,
        transaction_type=transaction_type,
        label=str(data.get("label") or code),
        aliases=tuple(str(a).strip() for a in aliases),
        allows_multi_item=_parse_bool(data, "allows_multi_item", code),
        allows_discount=_parse_bool(data, "allows_discount", code),
        requires_employee=_parse_bool(data, "requires_employee", code),
    )


def parse_posting_settings(data: dict[str, Any] | None) -> PostingSettings:
    data = data or {}
    unknown = set(data) - _POSTING_KEYS
    if unknown:
        raise ValueError(f"Unknown posting settings: {sorted(unknown)}")

    settings = PostingSettings(
        **{k: data[k] for k in data if k != "fallback_currency"},
        fallback_currency=normalize_currency_code(data.get("fallback_currency", "USD")),
    )
    if settings.max_commit_attempts < 1:
        raise ValueError("max_commit_attempts must be at least 1")
    if not 0 < settings.default_page_size <= settings.max_page_size:
        raise ValueError("default_page_size must be between 1 and max_page_size")
    return settings


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    categories = data["categories"]
    if not isinstance(categories, list) or not categories:
        raise ValueError("categories must be a non-empty list")

    return LedgerConfig(
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
        categories=CategoryPolicyTable(tuple(parse_category(c) for c in categories)),
        posting=parse_posting_settings(data.get("posting")),
    )


def load_config(path: Path) -> LedgerConfig:
    return parse_config(load_yaml_file(path))
