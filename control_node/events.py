"""Events fed into the activation state machine and the effects it emits."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from .state import Utterance


class EventKind(Enum):
    START = auto()
    UTTERANCE = auto()
    GESTURE = auto()
    LISTEN_TIMER = auto()


class EffectKind(Enum):
    WIRE_DETECTORS = auto()
    SPEAK = auto()
    SCHEDULE_LISTEN = auto()
    DISPATCH_COMMAND = auto()


@dataclass(frozen=True)
class Event:
    kind: EventKind
    utterance: Optional[Utterance] = None
    user_name: Optional[str] = None

    @classmethod
    def start(cls, user_name: Optional[str] = None) -> "Event":
        return cls(EventKind.START, user_name=user_name)

    @classmethod
    def heard(cls, utterance: Utterance) -> "Event":
        return cls(EventKind.UTTERANCE, utterance=utterance)

    @classmethod
    def gesture(cls) -> "Event":
        return cls(EventKind.GESTURE)

    @classmethod
    def listen_timer(cls) -> "Event":
        return cls(EventKind.LISTEN_TIMER)


@dataclass(frozen=True)
class Effect:
    kind: EffectKind
    text: str = ""
    delay_s: float = 0.0


__all__ = ["Effect", "EffectKind", "Event", "EventKind"]
