"""
Time sources for the content access layer.

Components take a clock instead of calling ``time`` directly so tests can
drive expiry and backoff deterministically.
"""

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Time source used by caches, limiters and monitors."""

    def time(self) -> float:
        """Wall-clock seconds since the epoch (persisted timestamps)."""
        ...

    def monotonic(self) -> float:
        """Monotonic seconds (intervals and windows)."""
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Clock backed by the interpreter and the running event loop."""

    def time(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


system_clock = SystemClock()
