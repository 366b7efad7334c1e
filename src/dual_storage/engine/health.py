"""Per-backend rolling failure counters that gate write attempts."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from dual_storage.contracts.results import StorageHealth

logger = logging.getLogger(__name__)


@dataclass
class _Counter:
    failures: int = 0
    last_failure_at: float | None = None


class HealthTracker:
    """Circuit breaker over named backends.

    A backend is unhealthy while ``failures >= failure_threshold`` and the
    last failure happened less than ``cool_down_ms`` ago. Once the cool-down
    elapses the counter is cleared and the next write acts as a probe.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        cool_down_ms: int = 60_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.failure_threshold = failure_threshold
        self.cool_down_s = cool_down_ms / 1000.0
        self._clock = clock
        self._counters: dict[str, _Counter] = {}
        self._lock = threading.Lock()

    def record_outcome(self, backend: str, success: bool) -> bool:
        """Record one attempt; return True when this failure opened the circuit."""
        with self._lock:
            counter = self._counters.setdefault(backend, _Counter())
            if success:
                counter.failures = 0
                return False
            counter.failures += 1
            counter.last_failure_at = self._clock()
            opened = counter.failures == self.failure_threshold
        if opened:
            logger.warning(
                "Circuit open for %s after %d consecutive failures",
                backend,
                self.failure_threshold,
            )
        return opened

    def is_healthy(self, backend: str) -> bool:
        with self._lock:
            counter = self._counters.get(backend)
            if counter is None or counter.failures < self.failure_threshold:
                return True
            if counter.last_failure_at is None:
                return True
            if self._clock() - counter.last_failure_at < self.cool_down_s:
                return False
            counter.failures = 0
            counter.last_failure_at = None
        logger.info("Cool-down elapsed for %s; allowing probe write", backend)
        return True

    def reset(self, backend: str) -> None:
        with self._lock:
            self._counters[backend] = _Counter()

    def snapshot(self, backend: str) -> StorageHealth:
        healthy = self.is_healthy(backend)
        with self._lock:
            counter = self._counters.get(backend, _Counter())
            return StorageHealth(
                backend=backend,
                failures=counter.failures,
                last_failure_at=counter.last_failure_at,
                is_healthy=healthy,
            )
