"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  It returns a frozen ``LedgerConfig`` holding the category
    policy table and the posting settings, loaded from YAML once per
    process.

Architecture position:
    Sits above ``ledger_kernel`` and below ``ledger_services``.  The kernel
    and the engines MUST NEVER import from ``ledger_config``.

Invariants enforced:
    - Single entrypoint; no other package reads the YAML or the
      ``LEDGER_CONFIG_DIR`` environment variable.
    - Loaded once and cached; the returned objects are immutable.

Failure modes:
    - ``FileNotFoundError`` when the configuration directory has no
      ``default.yaml``.
    - ``ValueError`` / ``KeyError`` from the loader on malformed content.

Audit relevance:
    Every load emits a ``ledger_config_loaded`` line with version and
    checksum, tying postings to the exact policy table in force.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from ledger_config.loader import load_config
from ledger_config.schema import (
    CategoryPolicy,
    CategoryPolicyTable,
    LedgerConfig,
    PostingSettings,
)
from ledger_kernel.logging_config import get_logger

__all__ = [
    "CategoryPolicy",
    "CategoryPolicyTable",
    "LedgerConfig",
    "PostingSettings",
    "get_active_config",
    "reset_active_config",
]

logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
_CONFIG_FILE = "default.yaml"
_ENV_VAR = "LEDGER_CONFIG_DIR"


def get_active_config(config_dir: Path | str | None = None) -> LedgerConfig:
    """
    The ONLY public configuration entrypoint.

    Args:
        config_dir: Directory holding ``default.yaml``.  Defaults to
            ``$LEDGER_CONFIG_DIR`` and then to ``ledger_config/sets``.
    """
    if config_dir is None:
        config_dir = os.environ.get(_ENV_VAR) or _DEFAULT_CONFIG_DIR
    return _load(str(Path(config_dir).resolve()))


def reset_active_config() -> None:
    """Drop the cached configuration. FOR TESTING ONLY."""
    _load.cache_clear()


@lru_cache(maxsize=8)
def _load(config_dir: str) -> LedgerConfig:
    path = Path(config_dir) / _CONFIG_FILE
    if not path.is_file():
        raise FileNotFoundError(f"Ledger configuration not found: {path}")

    config = load_config(path)

    logger.info(
        "ledger_config_loaded",
        extra={
            "config_path": str(path),
            "config_version": config.version,
            "checksum": config.checksum,
            "category_count": len(config.categories),
        },
    )
    return config
