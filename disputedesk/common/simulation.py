"""Injectable latency, failure and timer sources for the in-memory stores.

Every store call goes through a ``Simulator`` so tests can turn latency and
random failures off (deterministic mode) or script failures for a specific
operation. Timers go through a ``Scheduler`` so debounce logic can be driven
by a manual clock.
"""

from __future__ import annotations

import asyncio
import heapq
import inspect
import itertools
import random
import time
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import Any

from disputedesk.common.exceptions import TransientNetworkError
from disputedesk.common.logging import get_logger
from disputedesk.config import Settings, settings

logger = get_logger("simulation")


class Simulator:
    def __init__(
        self,
        enabled: bool = True,
        min_ms: int = 100,
        max_ms: int = 800,
        failure_rate: float = 0.0,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.enabled = enabled
        self.min_ms = min_ms
        self.max_ms = max(min_ms, max_ms)
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()
        self._sleep = sleep
        self._scripted: Counter[str] = Counter()

    @classmethod
    def from_settings(cls, config: Settings = settings) -> Simulator:
        return cls(
            enabled=config.SIMULATE_LATENCY,
            min_ms=config.LATENCY_MIN_MS,
            max_ms=config.LATENCY_MAX_MS,
            failure_rate=config.FAILURE_RATE,
            rng=random.Random(config.RANDOM_SEED),
        )

    @classmethod
    def disabled(cls) -> Simulator:
        return cls(enabled=False, min_ms=0, max_ms=0, failure_rate=0.0)

    def fail_next(self, operation: str, times: int = 1) -> None:
        """Force the next ``times`` calls of ``operation`` to fail."""
        self._scripted[operation] += times

    async def delay(self) -> None:
        if not self.enabled or self.max_ms <= 0:
            return
        await self._sleep(self.rng.uniform(self.min_ms, self.max_ms) / 1000)

    def maybe_fail(self, service: str, operation: str) -> None:
        if self._scripted[operation] > 0:
            self._scripted[operation] -= 1
            logger.debug("Scripted failure: %s.%s", service, operation)
            raise TransientNetworkError(service, operation)
        if self.enabled and self.failure_rate > 0 and self.rng.random() < self.failure_rate:
            logger.debug("Injected failure: %s.%s", service, operation)
            raise TransientNetworkError(service, operation)

    async def call(self, service: str, operation: str, can_fail: bool = True) -> None:
        await self.delay()
        if can_fail:
            self.maybe_fail(service, operation)


# ---------------------------------------------------------------------------
# Schedulers
# ---------------------------------------------------------------------------


class TimerHandle:
    def __init__(self, deadline: float) -> None:
        self.deadline = deadline
        self.cancelled = False
        self._inner: asyncio.TimerHandle | None = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._inner is not None:
            self._inner.cancel()


class Scheduler(ABC):
    @abstractmethod
    def now(self) -> float:
        ...

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        ...


class AsyncioScheduler(Scheduler):
    """Runs callbacks on the running event loop; coroutine results become tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        loop = asyncio.get_running_loop()
        handle = TimerHandle(self.now() + delay)

        def _fire() -> None:
            if handle.cancelled:
                return
            result = callback()
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

        handle._inner = loop.call_later(delay, _fire)
        return handle


class ManualScheduler(Scheduler):
    """Deterministic clock for tests. Time only moves through ``advance``."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, TimerHandle, Callable[[], Any]]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        handle = TimerHandle(self._now + delay)
        heapq.heappush(self._queue, (handle.deadline, next(self._seq), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h, _ in self._queue if not h.cancelled)

    async def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            deadline, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = deadline
            result = callback()
            if inspect.isawaitable(result):
                await result
        self._now = target
