"""
Tests for the per-owner Redis throttle, using an in-memory pipeline double.
"""
import redis

import ledger_fixtures  # noqa: F401

from ledger.services.throttle import OwnerThrottle


class FakePipeline:
    def __init__(self, store):
        self.store = store
        self.ops = []

    def incr(self, key):
        self.ops.append(("incr", key))

    def expire(self, key, seconds):
        self.ops.append(("expire", key, seconds))

    def execute(self):
        results = []
        for op in self.ops:
            if op[0] == "incr":
                self.store[op[1]] = self.store.get(op[1], 0) + 1
                results.append(self.store[op[1]])
            else:
                results.append(True)
        self.ops = []
        return results


class FakeRedis:
    def __init__(self):
        self.store = {}

    def pipeline(self):
        return FakePipeline(self.store)


class BrokenRedis:
    def pipeline(self):
        raise redis.ConnectionError("connection refused")


def _throttle(now, backend, limit=2, period=60):
    throttle = OwnerThrottle(
        redis_url="redis://unused",
        limit=limit,
        period_seconds=period,
        prefix="test",
        clock=lambda: now[0],
    )
    throttle._redis = backend
    return throttle


def test_admits_up_to_limit_then_waits_for_next_window() -> None:
    now = [125.0]
    throttle = _throttle(now, FakeRedis())

    assert throttle.acquire("owner-1") == 0.0
    assert throttle.acquire("owner-1") == 0.0
    assert throttle.acquire("owner-1") == 55.0

    now[0] = 180.0
    assert throttle.acquire("owner-1") == 0.0


def test_owners_are_counted_separately() -> None:
    backend = FakeRedis()
    throttle = _throttle([0.0], backend, limit=1)

    assert throttle.acquire("owner-1") == 0.0
    assert throttle.acquire("owner-2") == 0.0
    assert throttle.acquire("owner-1") > 0
    assert set(backend.store) == {"test:throttle:owner-1:0", "test:throttle:owner-2:0"}


def test_redis_failure_admits_job() -> None:
    throttle = _throttle([0.0], BrokenRedis(), limit=1)
    assert throttle.acquire("owner-1") == 0.0
    assert throttle.acquire("owner-1") == 0.0
