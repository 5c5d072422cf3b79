"""
Concurrent consumptions of the same inventory item.

Runs against a file-backed SQLite database so every thread gets its own
connection.  Writers serialize on the database lock; a writer that loses the
lock race is retried by the unit of work.
"""

import threading
import time
from dataclasses import replace
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from ledger_kernel.db.engine import create_tables, drop_tables, init_engine_from_url, reset_engine
from ledger_kernel.domain.dtos import IncomeInput, ItemizedAmount, LineItemInput
from ledger_kernel.domain.values import OperationType, PaymentMethod
from ledger_kernel.exceptions import InsufficientStockError
from ledger_kernel.models import InventoryItem, InventoryMovement, Transaction
from ledger_services.posting_orchestrator import TransactionPostingService, build_unit_of_work

pytestmark = pytest.mark.slow_locks

THREADS = 4


@pytest.fixture
def db_engine(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'race.db'}")
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def race_service(session_factory, deterministic_clock, ledger_config):
    config = replace(
        ledger_config,
        posting=replace(ledger_config.posting, max_commit_attempts=25, retry_backoff_seconds=0.01),
    )
    uow = build_unit_of_work(session_factory, config, sleep=time.sleep)
    return TransactionPostingService(uow, clock=deterministic_clock, config=config)


def _sale(today, item_id, quantity) -> IncomeInput:
    return IncomeInput(
        date=today,
        category="SALES",
        source=ItemizedAmount((
            LineItemInput(
                inventory_item_id=item_id,
                quantity=Decimal(quantity),
                unit_price=Decimal("20"),
                operation_type=OperationType.CONSUMPTION,
            ),
        )),
        payment_method=PaymentMethod.CASH,
    )


def test_stock_never_goes_negative(race_service, accountant_a, seed, today, session):
    barrier = threading.Barrier(THREADS)
    succeeded: list = []
    rejected: list = []
    crashed: list = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            record = race_service.create_income(_sale(today, seed.flour_id, "4"), accountant_a)
        except InsufficientStockError as exc:
            with lock:
                rejected.append(exc)
        except Exception as exc:
            with lock:
                crashed.append(exc)
        else:
            with lock:
                succeeded.append(record)

    threads = [threading.Thread(target=worker) for _ in range(THREADS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert crashed == []
    # 10 on hand, 4 per sale
    assert len(succeeded) == 2
    assert len(rejected) == THREADS - 2

    session.expire_all()
    assert session.get(InventoryItem, seed.flour_id).quantity == Decimal("2")
    assert session.scalar(select(func.count()).select_from(Transaction)) == 2
    assert session.scalar(select(func.count()).select_from(InventoryMovement)) == 2
