"""
Debounced request batching.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, TypeVar

from shared.logging import get_logger
from shared.metrics import MetricsCollector

T = TypeVar("T")

DEFAULT_BATCH_DELAY = 0.05


@dataclass
class PendingQuery:
    query: Callable[[], Awaitable[Any]]
    future: asyncio.Future


class RequestBatcher:
    """Collects calls per batch key until ``batch_delay`` passes without a new one.

    Every new call re-arms the key's timer. When it fires, all collected
    queries run concurrently and each caller receives the result at its
    position. By default a failing member only fails its own caller; with
    ``all_or_nothing`` the first failure (by position) fails the whole batch.
    """

    def __init__(
        self,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        *,
        all_or_nothing: bool = False,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.batch_delay = batch_delay
        self.all_or_nothing = all_or_nothing
        self.metrics = metrics
        self.logger = get_logger("content.batcher")

        self._batches: Dict[str, List[PendingQuery]] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._executing: Set[asyncio.Task] = set()
        self.stats: Dict[str, int] = {"batches": 0, "members": 0}

    async def batch_query(self, batch_key: str, query: Callable[[], Awaitable[T]]) -> T:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._batches.setdefault(batch_key, []).append(PendingQuery(query=query, future=future))

        timer = self._timers.pop(batch_key, None)
        if timer is not None:
            timer.cancel()
        self._timers[batch_key] = loop.call_later(self.batch_delay, self._fire, batch_key)

        return await future

    def get_pending_count(self, batch_key: str) -> int:
        return len(self._batches.get(batch_key, []))

    def _fire(self, batch_key: str):
        self._timers.pop(batch_key, None)
        batch = self._batches.pop(batch_key, [])
        if not batch:
            return

        task = asyncio.get_running_loop().create_task(self._execute(batch_key, batch))
        self._executing.add(task)
        task.add_done_callback(self._executing.discard)

    async def _execute(self, batch_key: str, batch: List[PendingQuery]):
        self.stats["batches"] += 1
        self.stats["members"] += len(batch)
        if self.metrics is not None:
            self.metrics.increment_counter("batch_executions_total", batch_key=batch_key)
            self.metrics.observe_histogram("batch_size", len(batch))
        self.logger.debug("Executing batch", batch_key=batch_key, size=len(batch))

        results = await asyncio.gather(*(self._invoke(member) for member in batch), return_exceptions=True)

        if self.all_or_nothing:
            failure = next((r for r in results if isinstance(r, BaseException)), None)
            if failure is not None:
                self.logger.warning("Batch failed", batch_key=batch_key, size=len(batch), error=str(failure))
                for member in batch:
                    if not member.future.done():
                        member.future.set_exception(failure)
                return

        failures = 0
        for member, result in zip(batch, results):
            if member.future.done():
                continue
            if isinstance(result, BaseException):
                failures += 1
                member.future.set_exception(result)
            else:
                member.future.set_result(result)
        if failures:
            self.logger.warning("Batch members failed", batch_key=batch_key, size=len(batch), failures=failures)

    @staticmethod
    async def _invoke(member: PendingQuery) -> Any:
        return await member.query()
