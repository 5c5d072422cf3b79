"""Tests for domain values: debt status derivation, caller scope, clock."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.clock import DeterministicClock, SystemClock
from ledger_kernel.domain.values import (
    Caller,
    DebtStatus,
    UserRole,
    derive_debt_status,
)


class TestDeriveDebtStatus:

    def test_untouched_debt_is_active(self):
        assert derive_debt_status(Decimal("200"), Decimal("200")) is DebtStatus.ACTIVE

    def test_partly_paid_debt_is_partial(self):
        assert derive_debt_status(Decimal("200"), Decimal("50")) is DebtStatus.PARTIAL

    def test_settled_debt_is_paid(self):
        assert derive_debt_status(Decimal("200"), Decimal("0")) is DebtStatus.PAID

    @pytest.mark.parametrize("remaining", [Decimal("-1"), Decimal("201")])
    def test_remaining_outside_range_rejected(self, remaining):
        with pytest.raises(ValueError):
            derive_debt_status(Decimal("200"), remaining)


class TestCaller:

    def test_accountant_is_branch_scoped(self):
        caller = Caller(id=uuid4(), role=UserRole.ACCOUNTANT, branch_id=uuid4())
        assert caller.is_branch_scoped

    def test_admin_is_unrestricted(self):
        assert not Caller(id=uuid4(), role=UserRole.ADMIN).is_branch_scoped

    def test_caller_is_frozen(self):
        caller = Caller(id=uuid4(), role=UserRole.ADMIN)
        with pytest.raises(AttributeError):
            caller.role = UserRole.ACCOUNTANT


class TestClock:

    def test_deterministic_clock_is_stable(self):
        clock = DeterministicClock(datetime(2026, 2, 1, 12, tzinfo=timezone.utc))
        assert clock.now() == clock.now()
        assert clock.today() == date(2026, 2, 1)

    def test_advance_and_set_time(self):
        start = datetime(2026, 2, 1, 23, 59, 59, tzinfo=timezone.utc)
        clock = DeterministicClock(start)
        clock.advance(1)
        assert clock.today() == date(2026, 2, 2)
        clock.set_time(start)
        assert clock.now() == start

    def test_naive_time_is_utc(self):
        clock = DeterministicClock(datetime(2026, 2, 1, 12))
        assert clock.now().tzinfo is timezone.utc

    def test_system_clock_is_aware(self):
        now = SystemClock().now()
        assert now.tzinfo is not None
        assert abs(now - datetime.now(timezone.utc)) < timedelta(seconds=5)
