"""
Sliding-window rate limiter with priority queuing per external endpoint.
"""

import asyncio
import heapq
import itertools
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Tuple, TypeVar

from shared.clock import Clock, system_clock
from shared.config import RateLimitConfig
from shared.errors import RateLimitQueueClearedError, RateLimitQueueFullError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

T = TypeVar("T")

# Floor for drain waits so an early wakeup cannot spin.
MIN_DRAIN_DELAY = 0.001


@dataclass
class QueuedRequest:
    """A throttled call waiting for a free slot."""
    invoke: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    enqueued_at: float
    priority: int
    sequence: int


QueueEntry = Tuple[int, int, QueuedRequest]


class SlidingWindowRateLimiter:
    """Bounds how many calls start per trailing window for each named endpoint.

    Calls beyond the quota wait in a per-endpoint queue ordered by priority
    (higher first) and then by arrival. A per-endpoint drain task admits one
    queued call per free slot and otherwise sleeps on the clock until the
    oldest start timestamp leaves the window.
    """

    def __init__(self, *, clock: Optional[Clock] = None, metrics: Optional[MetricsCollector] = None):
        self.clock = clock or system_clock
        self.metrics = metrics
        self.logger = get_logger("content.rate_limiter")

        self._configs: Dict[str, RateLimitConfig] = {}
        self._requests: Dict[str, Deque[float]] = {}
        self._queues: Dict[str, List[QueueEntry]] = {}
        self._drain_tasks: Dict[str, asyncio.Task] = {}
        self._running: Set[asyncio.Task] = set()
        self._sequence = itertools.count()

    def register_endpoint(self, endpoint: str, config: RateLimitConfig):
        """Declare the quota for ``endpoint``; configs cannot be replaced."""
        if endpoint in self._configs:
            raise ValidationError(
                f"Rate limit already registered for endpoint: {endpoint}",
                {"endpoint": endpoint}
            )
        self._configs[endpoint] = config
        self._requests[endpoint] = deque()
        self._queues[endpoint] = []
        self.logger.info(
            "Registered rate limit",
            endpoint=endpoint,
            max_requests=config.max_requests,
            window_seconds=config.window_seconds,
            queue_limit=config.queue_limit
        )

    def is_registered(self, endpoint: str) -> bool:
        return endpoint in self._configs

    def _clean_expired_requests(self, endpoint: str, window_seconds: float):
        now = self.clock.monotonic()
        started = self._requests[endpoint]
        while started and now - started[0] >= window_seconds:
            started.popleft()

    def _try_acquire(self, endpoint: str, config: RateLimitConfig) -> bool:
        self._clean_expired_requests(endpoint, config.window_seconds)
        started = self._requests[endpoint]
        if len(started) < config.max_requests:
            started.append(self.clock.monotonic())
            return True
        return False

    async def throttle(self, endpoint: str, fn: Callable[[], Awaitable[T]], priority: int = 0) -> T:
        """Run ``fn`` now if ``endpoint`` has capacity, otherwise wait in its queue.

        Raises RateLimitQueueFullError immediately when the queue is at its
        limit. Errors raised by ``fn`` reach the caller unchanged.
        """
        config = self._configs.get(endpoint)
        if config is None:
            self.logger.warning("No rate limit config for endpoint, executing immediately", endpoint=endpoint)
            return await fn()

        queue = self._queues[endpoint]
        # Waiting callers keep their place ahead of new arrivals.
        if not queue and self._try_acquire(endpoint, config):
            self._record_admission(endpoint, "immediate")
            return await fn()

        if config.queue_limit is not None and len(queue) >= config.queue_limit:
            self._record_admission(endpoint, "rejected")
            self.logger.warning(
                "Rate limit queue full",
                endpoint=endpoint,
                queue_length=len(queue),
                queue_limit=config.queue_limit
            )
            raise RateLimitQueueFullError(endpoint)

        future = asyncio.get_running_loop().create_future()
        sequence = next(self._sequence)
        request = QueuedRequest(
            invoke=fn,
            future=future,
            enqueued_at=self.clock.monotonic(),
            priority=priority,
            sequence=sequence,
        )
        heapq.heappush(queue, (-priority, sequence, request))
        self._record_admission(endpoint, "queued")
        self._update_queue_depth(endpoint)
        self.logger.debug("Request queued", endpoint=endpoint, priority=priority, queue_length=len(queue))

        self._schedule_drain(endpoint)
        return await future

    def _schedule_drain(self, endpoint: str):
        pending = self._drain_tasks.get(endpoint)
        if pending is not None and not pending.done():
            return
        self._drain_tasks[endpoint] = asyncio.get_running_loop().create_task(self._drain(endpoint))

    async def _drain(self, endpoint: str):
        try:
            while True:
                config = self._configs.get(endpoint)
                queue = self._queues.get(endpoint)
                if config is None or not queue:
                    return

                if self._try_acquire(endpoint, config):
                    _, _, request = heapq.heappop(queue)
                    self._update_queue_depth(endpoint)
                    task = asyncio.get_running_loop().create_task(self._run_queued(endpoint, request))
                    self._running.add(task)
                    task.add_done_callback(self._running.discard)
                    # Let the admitted call start before the next wait.
                    await asyncio.sleep(0)
                    continue

                oldest = self._requests[endpoint][0]
                wait = config.window_seconds - (self.clock.monotonic() - oldest)
                await self.clock.sleep(max(wait, MIN_DRAIN_DELAY))
        finally:
            if self._drain_tasks.get(endpoint) is asyncio.current_task():
                del self._drain_tasks[endpoint]

    async def _run_queued(self, endpoint: str, request: QueuedRequest):
        waited = self.clock.monotonic() - request.enqueued_at
        self.logger.debug("Queued request admitted", endpoint=endpoint, waited_seconds=round(waited, 4))
        try:
            result = await request.invoke()
        except asyncio.CancelledError:
            if not request.future.done():
                request.future.cancel()
            raise
        except Exception as e:
            if not request.future.done():
                request.future.set_exception(e)
            else:
                self.logger.debug("Discarding error for abandoned request", endpoint=endpoint, error=str(e))
            return

        if not request.future.done():
            request.future.set_result(result)

    def get_remaining_requests(self, endpoint: str) -> int:
        config = self._configs.get(endpoint)
        if config is None:
            return 0
        self._clean_expired_requests(endpoint, config.window_seconds)
        return max(0, config.max_requests - len(self._requests[endpoint]))

    def get_queue_length(self, endpoint: str) -> int:
        return len(self._queues.get(endpoint, []))

    def clear_queue(self, endpoint: str):
        """Fail every queued request for ``endpoint``."""
        queue = self._queues.get(endpoint)
        if not queue:
            return
        self._queues[endpoint] = []
        for _, _, request in queue:
            if not request.future.done():
                request.future.set_exception(RateLimitQueueClearedError(endpoint))
        self._update_queue_depth(endpoint)
        self.logger.info("Cleared rate limit queue", endpoint=endpoint, dropped=len(queue))

    def reset(self, endpoint: Optional[str] = None):
        """Clear timestamps and queues for one endpoint, or for all of them."""
        endpoints = [endpoint] if endpoint else list(self._configs)
        for name in endpoints:
            if name not in self._configs:
                continue
            drain = self._drain_tasks.pop(name, None)
            if drain is not None:
                drain.cancel()
            self._requests[name].clear()
            self.clear_queue(name)

    def get_status(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every registered endpoint."""
        return {
            name: {
                "max_requests": config.max_requests,
                "window_seconds": config.window_seconds,
                "queue_limit": config.queue_limit,
                "remaining": self.get_remaining_requests(name),
                "queued": self.get_queue_length(name),
            }
            for name, config in self._configs.items()
        }

    def _record_admission(self, endpoint: str, outcome: str):
        if self.metrics is not None:
            self.metrics.increment_counter("rate_limit_admissions_total", endpoint=endpoint, outcome=outcome)

    def _update_queue_depth(self, endpoint: str):
        if self.metrics is not None:
            self.metrics.set_gauge("rate_limit_queue_depth", len(self._queues[endpoint]), endpoint=endpoint)
