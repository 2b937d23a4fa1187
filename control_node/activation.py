"""Activation state machine: Dormant -> Idle -> Activated -> ListeningForCommand.

``transition`` is the whole decision table and has no side effects other than
committing the cooldown on an accepted activation. ``ActivationMachine`` owns
the live state, feeds events through a single-consumer queue, and carries out
the effects ``transition`` asks for.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Sequence, Tuple

from .configuration import ActivationSettings
from .cooldown import CooldownGate
from .events import Effect, EffectKind, Event, EventKind
from .scheduler import Scheduler, TimerHandle
from .state import ActivationState, CooldownWindow, Utterance

LOGGER = logging.getLogger(__name__)

StatusHook = Callable[[ActivationState, ActivationState], None]


@dataclass(frozen=True)
class Transition:
    next_state: ActivationState
    effects: Tuple[Effect, ...] = ()
    accepted_source: Optional[str] = None


def greeting_for(user_name: Optional[str]) -> str:
    if user_name:
        return f"Yes {user_name}, how may I help you?"
    return "Yes, how may I help you?"


def welcome_for(user_name: str, wake_word: str) -> str:
    return f"Welcome {user_name}. Say {wake_word} or show your palm to activate me."


def transition(
    state: ActivationState,
    event: Event,
    gate: CooldownGate,
    now: float,
    settings: ActivationSettings,
    user_name: Optional[str] = None,
) -> Transition:
    """Return the next state and the effects to run for ``event``."""
    if event.kind is EventKind.START:
        if state is not ActivationState.DORMANT:
            return Transition(state)
        effects: List[Effect] = [Effect(EffectKind.WIRE_DETECTORS)]
        if event.user_name:
            effects.append(Effect(EffectKind.SPEAK, text=welcome_for(event.user_name, settings.wake_word)))
        return Transition(ActivationState.IDLE, tuple(effects))

    if state is ActivationState.DORMANT:
        return Transition(state)

    if event.kind is EventKind.UTTERANCE:
        utterance = event.utterance or Utterance("")
        if state is ActivationState.LISTENING_FOR_COMMAND:
            return Transition(
                ActivationState.IDLE,
                (Effect(EffectKind.DISPATCH_COMMAND, text=utterance.text),),
            )
        if state is ActivationState.IDLE and utterance.contains(settings.wake_word):
            return _activate(state, "voice", gate, now, settings, user_name)
        return Transition(state)

    if event.kind is EventKind.GESTURE:
        if state is ActivationState.IDLE:
            return _activate(state, "gesture", gate, now, settings, user_name)
        return Transition(state)

    if event.kind is EventKind.LISTEN_TIMER:
        if state is ActivationState.ACTIVATED:
            return Transition(ActivationState.LISTENING_FOR_COMMAND)
        return Transition(state)

    raise ValueError(f"Unhandled event kind: {event.kind}")


def _activate(
    state: ActivationState,
    source: str,
    gate: CooldownGate,
    now: float,
    settings: ActivationSettings,
    user_name: Optional[str],
) -> Transition:
    if not gate.try_activate(now):
        LOGGER.info("Activation blocked (cooldown, %.1fs left)", gate.remaining(now))
        return Transition(state)
    return Transition(
        ActivationState.ACTIVATED,
        (
            Effect(EffectKind.SPEAK, text=greeting_for(user_name)),
            Effect(EffectKind.SCHEDULE_LISTEN, delay_s=settings.listen_delay_s),
        ),
        accepted_source=source,
    )


class ActivationMachine:
    """Runs transitions against the live state and applies their effects.

    All entry points may be called from any callback; events are queued and
    drained in order, each evaluated against the state current at the time it
    is taken off the queue.
    """

    def __init__(
        self,
        settings: ActivationSettings,
        scheduler: Scheduler,
        speak: Callable[[str], None],
        command_handler: Callable[[str], None],
        gate: Optional[CooldownGate] = None,
        status_hooks: Sequence[StatusHook] = (),
    ) -> None:
        self._settings = settings
        self._scheduler = scheduler
        self._speak = speak
        self._command_handler = command_handler
        self._gate = gate or CooldownGate(CooldownWindow(duration_s=settings.cooldown_s))
        self._status_hooks: List[StatusHook] = list(status_hooks)
        self._wiring: List[Callable[[], None]] = []
        self._state = ActivationState.DORMANT
        self._user_name: Optional[str] = None
        self._listen_handle: Optional[TimerHandle] = None
        self._queue: Deque[Event] = deque()
        self._draining = False

    @property
    def state(self) -> ActivationState:
        return self._state

    @property
    def user_name(self) -> Optional[str]:
        return self._user_name

    @property
    def gate(self) -> CooldownGate:
        return self._gate

    def is_running(self) -> bool:
        return self._state is not ActivationState.DORMANT

    def add_status_hook(self, hook: StatusHook) -> None:
        self._status_hooks.append(hook)

    def add_detector(self, wire: Callable[[], None]) -> None:
        """Register a callable that starts one trigger detector on system start."""
        self._wiring.append(wire)

    # Entry points ------------------------------------------------------------

    def start_system(self, user_name: Optional[str] = None) -> bool:
        """Wire up the detectors and enter Idle; a no-op unless Dormant."""
        if self._state is not ActivationState.DORMANT:
            LOGGER.debug("start_system ignored in state %s", self._state.label)
            return False
        name = user_name.strip() if user_name else ""
        self.dispatch(Event.start(name or None))
        return self._state is not ActivationState.DORMANT

    def on_utterance(self, utterance: Utterance) -> None:
        self.dispatch(Event.heard(utterance))

    def on_gesture(self) -> None:
        self.dispatch(Event.gesture())

    def dispatch(self, event: Event) -> None:
        self._queue.append(event)
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                self._process(self._queue.popleft())
        finally:
            self._draining = False
            self._queue.clear()

    # Internal helpers -----------------------------------------------------------

    def _process(self, event: Event) -> None:
        now = self._scheduler.now()
        result = transition(
            self._state,
            event,
            self._gate,
            now,
            self._settings,
            self._user_name,
        )
        if event.kind is EventKind.START and result.next_state is not self._state:
            self._start(event, result)
            return
        if result.accepted_source is not None:
            LOGGER.info("Activated by %s", result.accepted_source)
        self._set_state(result.next_state)
        self._apply(result.effects)

    def _start(self, event: Event, result: Transition) -> None:
        LOGGER.info("Starting system...")
        try:
            for wire in self._wiring:
                wire()
        except Exception:
            LOGGER.exception("Initialization failed")
            raise
        self._user_name = event.user_name
        self._set_state(result.next_state)
        if self._user_name:
            LOGGER.info("System online - Welcome %s!", self._user_name)
        else:
            LOGGER.info("System online - Say '%s' or show palm", self._settings.wake_word)
        self._apply(tuple(e for e in result.effects if e.kind is not EffectKind.WIRE_DETECTORS))

    def _set_state(self, new_state: ActivationState) -> None:
        old_state = self._state
        if new_state is old_state:
            return
        LOGGER.info("State: %s -> %s", old_state.label, new_state.label)
        self._state = new_state
        for hook in self._status_hooks:
            hook(old_state, new_state)

    def _apply(self, effects: Sequence[Effect]) -> None:
        for effect in effects:
            if effect.kind is EffectKind.SPEAK:
                self._speak(effect.text)
            elif effect.kind is EffectKind.SCHEDULE_LISTEN:
                self._schedule_listen(effect.delay_s)
            elif effect.kind is EffectKind.DISPATCH_COMMAND:
                LOGGER.info('Processing: "%s"', effect.text)
                self._command_handler(effect.text)
            else:
                raise ValueError(f"Unexpected effect {effect.kind}")

    def _schedule_listen(self, delay_s: float) -> None:
        if self._listen_handle is not None:
            self._listen_handle.cancel()
        self._listen_handle = self._scheduler.call_later(delay_s, self._on_listen_timer)

    def _on_listen_timer(self) -> None:
        self._listen_handle = None
        self.dispatch(Event.listen_timer())


__all__ = [
    "ActivationMachine",
    "StatusHook",
    "Transition",
    "greeting_for",
    "transition",
    "welcome_for",
]
