"""
Detached background writes with their own error channel.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector


@dataclass
class BackgroundTask:
    """A queued best-effort write."""
    name: str
    factory: Callable[[], Awaitable[Any]]


class BackgroundWriter:
    """Bounded queue of fire-and-forget writes drained by a worker task.

    Submissions never block and never raise: a full queue drops the task with
    a warning, and a failing task is logged and counted.
    """

    def __init__(self, max_queue_size: int = 500, metrics: Optional[MetricsCollector] = None):
        self.max_queue_size = max_queue_size
        self.metrics = metrics
        self.logger = get_logger("content.background")

        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self.running = False
        self.stats: Dict[str, int] = {"submitted": 0, "completed": 0, "failed": 0, "dropped": 0}

    async def start(self):
        """Start the worker task."""
        self._ensure_worker()
        self.logger.info("Background writer started", max_queue_size=self.max_queue_size)

    async def stop(self, flush: bool = True):
        """Stop the worker, optionally draining pending writes first."""
        if flush:
            await self.flush()
        self.running = False
        if self._worker:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        self.logger.info("Background writer stopped", **self.stats)

    def submit(self, name: str, factory: Callable[[], Awaitable[Any]]) -> bool:
        """Queue a write; returns False when it was dropped."""
        self._ensure_worker()
        try:
            self._queue.put_nowait(BackgroundTask(name=name, factory=factory))
        except asyncio.QueueFull:
            self.stats["dropped"] += 1
            self.logger.warning("Background queue full, dropping write", task=name)
            return False
        self.stats["submitted"] += 1
        return True

    async def flush(self):
        """Wait until every queued write has been attempted."""
        if self._queue is not None and self._worker is not None:
            await self._queue.join()

    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def _ensure_worker(self):
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.max_queue_size)
        if self._worker is None or self._worker.done():
            self.running = True
            self._worker = asyncio.get_running_loop().create_task(self._process_queue())

    async def _process_queue(self):
        while self.running:
            task = await self._queue.get()
            try:
                await task.factory()
                self.stats["completed"] += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.stats["failed"] += 1
                self.logger.error("Background write failed", task=task.name, error=str(e))
                if self.metrics is not None:
                    self.metrics.increment_counter("background_write_failures_total", task=task.name.split(":")[0])
            finally:
                self._queue.task_done()
