"""Kernel service infrastructure."""

from ledger_kernel.services.base import BaseService

__all__ = ["BaseService"]
