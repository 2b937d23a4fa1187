"""Shared fakes for activation engine tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List

import pytest


@dataclass
class FakeTimer:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """Deterministic clock; timers fire only when ``advance`` passes them."""

    current: float = 100.0
    timers: List[FakeTimer] = field(default_factory=list)

    def now(self) -> float:
        return self.current

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(due=self.current + delay_s, callback=callback)
        self.timers.append(timer)
        return timer

    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.current + seconds
        while True:
            due = [t for t in self.pending() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.timers.remove(timer)
            self.current = max(self.current, timer.due)
            timer.callback()
        self.current = target


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()
