"""Executors for entity batches and the per-batch source fan-out."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from threading import Lock
from typing import Dict, Iterator, Set


class ThreadPoolManager:
    """Own the entity pools (one per job and batch size) and short-lived source pools.

    Entity pools are cached because every batch of a job reuses them. Source
    pools are created per batch with one worker per (entity, source) pair, so a
    fetch starts as soon as it is submitted and its timeout never includes
    time spent queued behind a batch-mate's slow source.
    """

    def __init__(self, default_workers: int = 8) -> None:
        self.default_workers = default_workers
        self._entity_pools: Dict[str, ThreadPoolExecutor] = {}
        self._source_pools: Set[ThreadPoolExecutor] = set()
        self._lock = Lock()

    def entity_pool(self, job: str, batch_size: int | None = None) -> ThreadPoolExecutor:
        workers = max(1, batch_size or self.default_workers)
        key = f"{job}-entities-{workers}"
        with self._lock:
            if key not in self._entity_pools:
                self._entity_pools[key] = ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix=f"hyperlocal-{key}"
                )
            return self._entity_pools[key]

    @staticmethod
    def fan_out_width(batch_size: int, source_count: int) -> int:
        return max(1, batch_size) * max(1, source_count)

    @contextmanager
    def source_pool(self, job: str, batch_size: int, source_count: int) -> Iterator[ThreadPoolExecutor]:
        """Yield a pool wide enough to start every fetch of one batch at once."""

        executor = ThreadPoolExecutor(
            max_workers=self.fan_out_width(batch_size, source_count),
            thread_name_prefix=f"hyperlocal-{job}-sources",
        )
        with self._lock:
            self._source_pools.add(executor)
        try:
            yield executor
        finally:
            # Timed-out fetches keep their threads; they are not waited on.
            executor.shutdown(wait=False, cancel_futures=True)
            with self._lock:
                self._source_pools.discard(executor)

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            executors = [*self._entity_pools.values(), *self._source_pools]
            self._entity_pools.clear()
            self._source_pools.clear()
        for executor in executors:
            executor.shutdown(wait=wait)


__all__ = ["ThreadPoolManager"]
