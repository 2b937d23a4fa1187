"""Timer abstraction so the core never sleeps or blocks on its own."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Subset of the event loop API used by the core."""

    def now(self) -> float:
        ...

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def now(self) -> float:
        return self._loop.time()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        return self._loop.call_later(max(0.0, delay_s), callback)

    def call_soon_threadsafe(self, callback: Callable[..., None], *args: object) -> None:
        """Hand a callback from a worker thread back to the loop thread."""
        self._loop.call_soon_threadsafe(callback, *args)


__all__ = ["AsyncioScheduler", "Scheduler", "TimerHandle"]
