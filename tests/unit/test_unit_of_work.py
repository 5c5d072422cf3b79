"""Tests for UnitOfWork: commit, rollback and bounded retry of transient faults."""

from dataclasses import replace

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from ledger_kernel.db.unit_of_work import UnitOfWork, is_transient_error
from ledger_kernel.exceptions import CommitRetriesExhaustedError, ValidationError
from ledger_services.posting_orchestrator import build_unit_of_work


class FakeSession:
    def __init__(self, log: list):
        self.log = log

    def commit(self):
        self.log.append("commit")

    def rollback(self):
        self.log.append("rollback")

    def close(self):
        self.log.append("close")


def _operational() -> OperationalError:
    return OperationalError("UPDATE inventory_items", {}, Exception("database is locked"))


@pytest.fixture
def log():
    return []


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def uow(log, sleeps):
    return UnitOfWork(
        lambda: FakeSession(log), max_attempts=3, backoff_seconds=0.1, sleep=sleeps.append
    )


class TestIsTransientError:

    def test_operational_error_is_transient(self):
        assert is_transient_error(_operational())

    def test_invalidated_connection_is_transient(self):
        exc = DBAPIError("SELECT 1", {}, Exception("gone"), connection_invalidated=True)
        assert is_transient_error(exc)

    def test_integrity_error_is_not_transient(self):
        assert not is_transient_error(IntegrityError("INSERT", {}, Exception("dup")))

    def test_domain_error_is_not_transient(self):
        assert not is_transient_error(ValidationError("bad"))


class TestUnitOfWork:

    def test_commits_and_returns_result(self, uow, log):
        assert uow.run(lambda session: 42) == 42
        assert log == ["commit", "close"]

    def test_domain_error_rolls_back_without_retry(self, uow, log, sleeps):
        def work(session):
            raise ValidationError("no")

        with pytest.raises(ValidationError):
            uow.run(work)
        assert log == ["rollback", "close"]
        assert sleeps == []

    def test_transient_error_retried_on_fresh_session(self, uow, log, sleeps):
        sessions = []

        def work(session):
            sessions.append(session)
            if len(sessions) < 3:
                raise _operational()
            return "ok"

        assert uow.run(work) == "ok"
        assert len({id(s) for s in sessions}) == 3
        assert log == ["rollback", "close", "rollback", "close", "commit", "close"]
        assert sleeps == pytest.approx([0.1, 0.2])

    def test_retries_exhausted(self, uow, captured_logs):
        def work(session):
            raise _operational()

        with pytest.raises(CommitRetriesExhaustedError) as exc_info:
            uow.run(work)

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, OperationalError)
        messages = [r["message"] for r in captured_logs()]
        assert messages.count("commit_retry") == 3
        assert "commit_retries_exhausted" in messages

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            UnitOfWork(lambda: None, max_attempts=0)


class TestBuiltFromSettings:

    def test_retry_budget_follows_posting_settings(self, ledger_config, log, sleeps):
        config = replace(
            ledger_config,
            posting=replace(ledger_config.posting, max_commit_attempts=5, retry_backoff_seconds=0.2),
        )
        uow = build_unit_of_work(lambda: FakeSession(log), config, sleep=sleeps.append)

        def work(session):
            raise _operational()

        with pytest.raises(CommitRetriesExhaustedError) as exc_info:
            uow.run(work)

        assert uow.max_attempts == 5
        assert exc_info.value.attempts == 5
        assert log.count("rollback") == 5
        assert sleeps == pytest.approx([0.2, 0.4, 0.6, 0.8])

    def test_default_settings_budget(self, ledger_config):
        uow = build_unit_of_work(lambda: None, ledger_config)
        assert uow.max_attempts == ledger_config.posting.max_commit_attempts
