"""
Module: ledger_kernel.db.unit_of_work
Responsibility: The explicit atomic unit for a posting.  Opens a session,
    hands it to a unit of work callable, commits on success and rolls back on
    any failure.  Transient database failures are retried a bounded number of
    times, each attempt on a fresh session.
Architecture position: Kernel > DB.  Services receive the session this module
    opens by reference; there is no ambient or global transaction handle.

Invariants enforced:
    - All writes made by ``work`` commit together or not at all.
    - Domain errors (LedgerError) are never retried.
    - ``work`` may run more than once; it must derive every write from its
      arguments and the session, never from state mutated by an earlier try.

Failure modes:
    - CommitRetriesExhaustedError once ``max_attempts`` transient failures
      have occurred.
    - Any non-transient exception from ``work`` or ``commit`` propagates
      unchanged after rollback.
"""

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.exceptions import CommitRetriesExhaustedError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")

T = TypeVar("T")


def is_transient_error(exc: BaseException) -> bool:
    """Connection loss, lock timeouts and similar faults worth retrying."""
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


class UnitOfWork:
    """
    Bounded-retry transactional scope.

    Contract:
        ``run(work)`` returns whatever ``work(session)`` returns, after the
        session has been committed.

    Guarantees:
        - The session is always closed, whatever the outcome.
        - A rolled-back attempt leaves no partial writes behind.

    Non-goals:
        - Does not retry IntegrityError or domain errors: those describe
          the request, not the infrastructure.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        max_attempts: int = 3,
        backoff_seconds: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def run(self, work: Callable[[Session], T]) -> T:
        last_error: BaseException | None = None

        for attempt in range(1, self._max_attempts + 1):
            session = self._session_factory()
            try:
                result = work(session)
                session.commit()
                return result
            except Exception as exc:
                session.rollback()
                if not is_transient_error(exc):
                    raise
                last_error = exc
                logger.warning(
                    "commit_retry",
                    extra={
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                        "error_type": type(exc).__name__,
                    },
                )
                if attempt < self._max_attempts:
                    self._sleep(self._backoff_seconds * attempt)
            finally:
                session.close()

        logger.error(
            "commit_retries_exhausted",
            extra={"attempts": self._max_attempts},
        )
        raise CommitRetriesExhaustedError(
            attempts=self._max_attempts,
            last_error=str(last_error),
        ) from last_error
