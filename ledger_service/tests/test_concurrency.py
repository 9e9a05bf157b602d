from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from fakes import build_fixture, paid_deposit

from common.locks import KeyedLock
from ledger_service.app.exceptions import InsufficientBalance
from ledger_service.app.models.deposit import UsageReason


def test_keyed_lock_releases_idle_keys() -> None:
    locks = KeyedLock()

    with locks.hold("deposit:1"):
        with locks.hold("deposit:1"):
            assert locks.active_keys() == 1
        with locks.hold("contract:1"):
            assert locks.active_keys() == 2

    assert locks.active_keys() == 0


def test_keyed_lock_serializes_same_key() -> None:
    locks = KeyedLock()
    counter = {"value": 0}
    barrier = threading.Barrier(8)

    def _increment() -> None:
        barrier.wait()
        for _ in range(200):
            with locks.hold("deposit:1"):
                current = counter["value"]
                counter["value"] = current + 1

    threads = [threading.Thread(target=_increment) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert counter["value"] == 1600


def test_concurrent_usage_never_overdraws() -> None:
    fx = build_fixture()
    record = paid_deposit(fx, 100)

    def _use() -> bool:
        try:
            fx.ledger.record_usage(record.id, 7, None, UsageReason.PENALTY)
        except InsufficientBalance:
            return False
        return True

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: _use(), range(30)))

    final = fx.ledger.get(record.id)
    assert results.count(True) == 14
    assert final.used_amount == Decimal("98")
    assert final.available_amount == Decimal("2")
    assert len(final.usage_history) == 14
