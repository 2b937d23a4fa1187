"""Dataclasses modelling activation, detector, and recognition state."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ActivationState(Enum):
    """Lifecycle of the activation engine."""

    DORMANT = "DORMANT"
    IDLE = "IDLE"
    ACTIVATED = "ACTIVATED"
    LISTENING_FOR_COMMAND = "LISTENING"

    @property
    def label(self) -> str:
        return self.value


@dataclass
class CooldownWindow:
    """Timestamp of the last accepted activation plus the fixed window."""

    duration_s: float = 5.0
    last_activation_at: Optional[float] = None


@dataclass
class GestureDetectionState:
    """Mutable palm-hold hysteresis state."""

    armed: bool = False
    stable_frame_count: int = 0
    last_frame: Optional[Any] = None
    quiet_since: Optional[float] = None

    def disarm(self) -> None:
        self.armed = False
        self.stable_frame_count = 0
        self.quiet_since = None


@dataclass
class RecognitionSession:
    """Recognition service lifecycle as seen by the coordinator.

    ``paused`` is an application level mute: the service keeps running while
    results are dropped.
    """

    active: bool = False
    paused: bool = False
    restart_pending: bool = False
    permission_denied: bool = False


@dataclass(frozen=True)
class Utterance:
    """A single recognized phrase, lower-cased and trimmed."""

    text: str

    @classmethod
    def from_transcript(cls, transcript: str) -> "Utterance":
        return cls(text=transcript.lower().strip())

    def __bool__(self) -> bool:
        return bool(self.text)

    def contains(self, token: str) -> bool:
        return token.lower() in self.text


__all__ = [
    "ActivationState",
    "CooldownWindow",
    "GestureDetectionState",
    "RecognitionSession",
    "Utterance",
]
