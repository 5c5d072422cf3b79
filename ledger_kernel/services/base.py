"""
BaseService -- abstract base for session-bound write services.

Responsibility:
    Common constructor and session-handling contract for every service that
    writes during a posting.  Services receive the unit of work's
    ``Session`` and use ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    - Services flush within the caller's transaction and never commit or
      roll back themselves.  UnitOfWork owns both.

Failure modes:
    - A subclass calling ``session.commit()`` would split one posting into
      several transactions and break its atomicity.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for session-bound services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and flushes
        changes into the caller's active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only query methods -- those belong in
          ``ledger_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
