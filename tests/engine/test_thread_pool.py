from __future__ import annotations

import threading

from hyperlocal.engine.thread_pool import ThreadPoolManager


def test_entity_pools_are_cached_per_job_and_batch() -> None:
    manager = ThreadPoolManager(default_workers=2)
    try:
        pool = manager.entity_pool("daily-brief", 3)
        assert manager.entity_pool("daily-brief", 3) is pool
        assert manager.entity_pool("daily-brief", 1) is not pool
        assert manager.entity_pool("look-ahead", 3) is not pool
        assert pool.submit(lambda: 21 * 2).result(timeout=5) == 42
    finally:
        manager.shutdown(wait=True)


def test_source_pool_starts_every_fetch_of_a_batch_at_once() -> None:
    manager = ThreadPoolManager(default_workers=1)
    # two entities with two sources each must all be running together
    barrier = threading.Barrier(4, timeout=5)
    try:
        with manager.source_pool("daily-brief", batch_size=2, source_count=2) as sources:
            futures = [sources.submit(barrier.wait) for _ in range(4)]
            assert sorted(future.result(timeout=10) for future in futures) == [0, 1, 2, 3]
    finally:
        manager.shutdown(wait=True)


def test_fan_out_width() -> None:
    assert ThreadPoolManager.fan_out_width(3, 2) == 6
    assert ThreadPoolManager.fan_out_width(0, 0) == 1
