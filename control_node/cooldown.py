"""Global activation cooldown shared by every trigger source."""

from __future__ import annotations

import threading
from typing import Optional

from .state import CooldownWindow

ACTIVATION_COOLDOWN_S = 5.0


class CooldownGate:
    """Single authority deciding whether an activation may proceed.

    The check and the timestamp commit happen under one lock so two triggers
    racing for the same window cannot both pass.
    """

    def __init__(self, window: Optional[CooldownWindow] = None) -> None:
        self._window = window or CooldownWindow(duration_s=ACTIVATION_COOLDOWN_S)
        self._lock = threading.Lock()

    @property
    def window(self) -> CooldownWindow:
        return self._window

    def try_activate(self, now: float) -> bool:
        """Commit ``now`` as the last activation iff the window has elapsed."""
        with self._lock:
            last = self._window.last_activation_at
            if last is not None and now - last < self._window.duration_s:
                return False
            self._window.last_activation_at = now
            return True

    def remaining(self, now: float) -> float:
        """Seconds until the gate opens again (0.0 when open)."""
        with self._lock:
            last = self._window.last_activation_at
            if last is None:
                return 0.0
            return max(0.0, self._window.duration_s - (now - last))


__all__ = ["ACTIVATION_COOLDOWN_S", "CooldownGate"]
