"""
Ledger Kernel

The persistence and domain core of a multi-branch income/expense ledger:
- Typed errors with machine-readable codes
- Structured JSON logging with request-scoped context
- SQLAlchemy models for transactions, inventory, debts and reference data
- An explicit unit of work for atomic, retry-aware postings
"""

__version__ = "0.1.0"
