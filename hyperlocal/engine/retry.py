"""Quota-aware retry with fixed backoff, plus a fixed-delay throttle per source."""

from __future__ import annotations

import time
from threading import Lock
from typing import Callable, Sequence, TypeVar

import structlog

from ..errors import QuotaExceededError

T = TypeVar("T")

DEFAULT_DELAYS: tuple[float, ...] = (2.0, 5.0, 15.0)
QUOTA_MARKERS = ("RESOURCE_EXHAUSTED", "429")


def is_quota_error(error: BaseException) -> bool:
    """Classify quota/rate-limit failures, the only ones worth waiting for."""

    if isinstance(error, QuotaExceededError):
        return True
    status = getattr(error, "status_code", None)
    if status == 429:
        return True
    message = str(error)
    return any(marker in message for marker in QUOTA_MARKERS)


class RetryingCaller:
    """Call a function, sleeping through a fixed delay list on retryable errors.

    A call that keeps failing with a retryable error is attempted
    ``len(delays) + 1`` times; the last error is then re-raised. Any other
    error propagates on the first attempt.
    """

    def __init__(
        self,
        delays: Sequence[float] = DEFAULT_DELAYS,
        is_retryable: Callable[[BaseException], bool] = is_quota_error,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.delays = tuple(delays)
        self.is_retryable = is_retryable
        self._sleep = sleep
        self.logger = logger or structlog.get_logger("hyperlocal.retry")

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        attempt = 0
        while True:
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                if not self.is_retryable(exc) or attempt >= len(self.delays):
                    raise
                delay = self.delays[attempt]
                attempt += 1
                self.logger.warning(
                    "quota_retry",
                    attempt=attempt,
                    max_retries=len(self.delays),
                    delay_seconds=delay,
                    error=str(exc),
                )
                self._sleep(delay)


class FixedDelayThrottle:
    """Enforce a minimum gap between sequential calls to one source."""

    def __init__(
        self,
        delay: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.delay = max(0.0, float(delay))
        self._sleep = sleep
        self._clock = clock
        self._last: float | None = None
        self._lock = Lock()

    def wait(self) -> None:
        if self.delay <= 0:
            return
        with self._lock:
            now = self._clock()
            if self._last is not None:
                remaining = self._last + self.delay - now
                if remaining > 0:
                    self._sleep(remaining)
                    now += remaining
            self._last = now


__all__ = ["DEFAULT_DELAYS", "FixedDelayThrottle", "RetryingCaller", "is_quota_error"]
