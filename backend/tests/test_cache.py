from __future__ import annotations

import threading
import time

import pytest

from assessment.core.cache import ResponseCache
from assessment.schemas.tasks import GenerationTask, TaskKind

TASK = GenerationTask.of(TaskKind.SENTIMENT, text="I enjoyed the interview")


class ManualClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_miss_then_hit():
    cache = ResponseCache(ttl_seconds=60)
    calls = []

    def compute():
        calls.append(1)
        return "positive"

    assert cache.get_or_compute(TASK, compute) == "positive"
    assert cache.get_or_compute(TASK, compute) == "positive"
    assert len(calls) == 1
    assert cache.stats() == {"entries": 1, "hits": 1, "misses": 1}


def test_equivalent_tasks_share_an_entry():
    cache = ResponseCache()
    cache.get_or_compute(TASK, lambda: "first")

    padded = GenerationTask.of(TaskKind.SENTIMENT, text="  I enjoyed the interview ")
    assert cache.get_or_compute(padded, lambda: "second") == "first"


def test_entries_expire_after_ttl():
    clock = ManualClock()
    cache = ResponseCache(ttl_seconds=3600, clock=clock)
    cache.get_or_compute(TASK, lambda: "old")

    clock.now += 3599
    assert cache.get_or_compute(TASK, lambda: "new") == "old"

    clock.now += 1
    assert cache.get(TASK) is None
    assert cache.get_or_compute(TASK, lambda: "new") == "new"


def test_failures_are_not_cached():
    cache = ResponseCache()

    def boom():
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError):
        cache.get_or_compute(TASK, boom)

    assert len(cache) == 0
    assert cache.get_or_compute(TASK, lambda: "recovered") == "recovered"


def test_concurrent_misses_compute_once():
    cache = ResponseCache()
    release = threading.Event()
    calls = []
    results = []

    def slow_compute():
        calls.append(threading.get_ident())
        release.wait(timeout=5)
        return "shared"

    def worker():
        results.append(cache.get_or_compute(TASK, slow_compute))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    # Let every worker reach the cache before the computation finishes
    time.sleep(0.2)
    release.set()
    for t in threads:
        t.join(timeout=5)

    assert len(calls) == 1
    assert results == ["shared"] * 8


def test_concurrent_waiters_share_the_failure():
    cache = ResponseCache()
    release = threading.Event()
    errors = []

    def failing_compute():
        release.wait(timeout=5)
        raise ValueError("bad reply")

    def worker():
        try:
            cache.get_or_compute(TASK, failing_compute)
        except ValueError as e:
            errors.append(str(e))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    time.sleep(0.2)
    release.set()
    for t in threads:
        t.join(timeout=5)

    assert errors == ["bad reply"] * 4
    assert len(cache) == 0


def test_invalidate_purge_and_clear():
    clock = ManualClock()
    cache = ResponseCache(ttl_seconds=10, clock=clock)
    other = GenerationTask.of(TaskKind.SENTIMENT, text="Another answer")
    cache.get_or_compute(TASK, lambda: "a")
    cache.get_or_compute(other, lambda: "b")

    assert cache.invalidate(TASK) is True
    assert cache.invalidate(TASK) is False

    clock.now += 11
    assert cache.purge_expired() == 1
    assert len(cache) == 0

    cache.get_or_compute(TASK, lambda: "c")
    cache.clear()
    assert cache.stats() == {"entries": 0, "hits": 0, "misses": 0}
