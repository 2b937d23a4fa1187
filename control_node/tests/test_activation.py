"""Tests for the activation transition table and orchestrator."""

from __future__ import annotations

from typing import List, Tuple

import pytest

from control_node.activation import ActivationMachine, greeting_for, transition
from control_node.configuration import ActivationSettings
from control_node.cooldown import CooldownGate
from control_node.events import EffectKind, Event
from control_node.state import ActivationState, Utterance

SETTINGS = ActivationSettings()


def heard(text: str) -> Event:
    return Event.heard(Utterance.from_transcript(text))


# Transition table ------------------------------------------------------------


def test_start_from_dormant_wires_detectors() -> None:
    result = transition(ActivationState.DORMANT, Event.start(), CooldownGate(), 0.0, SETTINGS)
    assert result.next_state is ActivationState.IDLE
    assert [e.kind for e in result.effects] == [EffectKind.WIRE_DETECTORS]


def test_start_with_name_speaks_welcome() -> None:
    result = transition(ActivationState.DORMANT, Event.start("Ada"), CooldownGate(), 0.0, SETTINGS)
    assert result.effects[-1].kind is EffectKind.SPEAK
    assert result.effects[-1].text == "Welcome Ada. Say control or show your palm to activate me."


@pytest.mark.parametrize(
    "event",
    [heard("control"), Event.gesture(), Event.listen_timer()],
)
def test_dormant_ignores_triggers(event: Event) -> None:
    gate = CooldownGate()
    result = transition(ActivationState.DORMANT, event, gate, 0.0, SETTINGS)
    assert result.next_state is ActivationState.DORMANT
    assert result.effects == ()
    assert gate.window.last_activation_at is None


@pytest.mark.parametrize(
    "event, source",
    [(heard("hey Control please"), "voice"), (Event.gesture(), "gesture")],
)
def test_idle_trigger_activates(event: Event, source: str) -> None:
    result = transition(ActivationState.IDLE, event, CooldownGate(), 10.0, SETTINGS, "Ada")
    assert result.next_state is ActivationState.ACTIVATED
    assert result.accepted_source == source
    speak, schedule = result.effects
    assert speak.kind is EffectKind.SPEAK and speak.text == "Yes Ada, how may I help you?"
    assert schedule.kind is EffectKind.SCHEDULE_LISTEN and schedule.delay_s == pytest.approx(2.5)


def test_idle_ignores_non_wake_utterance() -> None:
    gate = CooldownGate()
    result = transition(ActivationState.IDLE, heard("open music"), gate, 0.0, SETTINGS)
    assert result.next_state is ActivationState.IDLE
    assert gate.window.last_activation_at is None


def test_cooldown_blocks_second_trigger() -> None:
    gate = CooldownGate()
    first = transition(ActivationState.IDLE, heard("control"), gate, 10.0, SETTINGS)
    second = transition(ActivationState.IDLE, Event.gesture(), gate, 12.0, SETTINGS)
    assert first.next_state is ActivationState.ACTIVATED
    assert second.next_state is ActivationState.IDLE
    assert second.effects == ()


@pytest.mark.parametrize(
    "state", [ActivationState.ACTIVATED, ActivationState.LISTENING_FOR_COMMAND]
)
def test_gesture_outside_idle_does_not_touch_cooldown(state: ActivationState) -> None:
    gate = CooldownGate()
    result = transition(state, Event.gesture(), gate, 0.0, SETTINGS)
    assert result.next_state is state
    assert gate.window.last_activation_at is None


def test_listen_timer_only_advances_from_activated() -> None:
    gate = CooldownGate()
    advanced = transition(ActivationState.ACTIVATED, Event.listen_timer(), gate, 0.0, SETTINGS)
    stale = transition(ActivationState.IDLE, Event.listen_timer(), gate, 0.0, SETTINGS)
    assert advanced.next_state is ActivationState.LISTENING_FOR_COMMAND
    assert stale.next_state is ActivationState.IDLE


def test_activated_ignores_utterances() -> None:
    result = transition(ActivationState.ACTIVATED, heard("control open music"), CooldownGate(), 0.0, SETTINGS)
    assert result.next_state is ActivationState.ACTIVATED
    assert result.effects == ()


def test_listening_treats_any_utterance_as_command() -> None:
    result = transition(
        ActivationState.LISTENING_FOR_COMMAND, heard("control"), CooldownGate(), 0.0, SETTINGS
    )
    assert result.next_state is ActivationState.IDLE
    assert result.effects[0].kind is EffectKind.DISPATCH_COMMAND
    assert result.effects[0].text == "control"


def test_greeting_without_name() -> None:
    assert greeting_for(None) == "Yes, how may I help you?"


# Orchestrator ---------------------------------------------------------------------


class Harness:
    def __init__(self, scheduler) -> None:
        self.spoken: List[str] = []
        self.commands: List[Tuple[str, ActivationState]] = []
        self.statuses: List[ActivationState] = []
        self.wired = 0
        self.machine = ActivationMachine(
            SETTINGS,
            scheduler,
            speak=self.spoken.append,
            command_handler=self._handle,
            status_hooks=(lambda _old, new: self.statuses.append(new),),
        )
        self.machine.add_detector(self._wire)

    def _wire(self) -> None:
        self.wired += 1

    def _handle(self, text: str) -> None:
        self.commands.append((text, self.machine.state))


@pytest.fixture
def harness(scheduler) -> Harness:
    return Harness(scheduler)


def test_start_system_is_idempotent(harness: Harness) -> None:
    assert harness.machine.start_system("Ada") is True
    assert harness.machine.start_system("Bob") is False
    assert harness.wired == 1
    assert harness.spoken == ["Welcome Ada. Say control or show your palm to activate me."]
    assert harness.machine.user_name == "Ada"
    assert harness.machine.state is ActivationState.IDLE


def test_blank_name_is_not_personalised(harness: Harness) -> None:
    harness.machine.start_system("   ")
    assert harness.spoken == []
    harness.machine.on_gesture()
    assert harness.spoken == ["Yes, how may I help you?"]


def test_wiring_failure_leaves_machine_dormant(scheduler) -> None:
    machine = ActivationMachine(SETTINGS, scheduler, speak=lambda _t: None, command_handler=lambda _t: None)

    def broken() -> None:
        raise RuntimeError("no detectors")

    machine.add_detector(broken)
    with pytest.raises(RuntimeError):
        machine.start_system()
    assert machine.state is ActivationState.DORMANT


def test_command_round_trip(harness: Harness, scheduler) -> None:
    harness.machine.start_system()
    harness.machine.on_utterance(Utterance.from_transcript("Control"))
    assert harness.machine.state is ActivationState.ACTIVATED

    scheduler.advance(2.5)
    assert harness.machine.state is ActivationState.LISTENING_FOR_COMMAND

    harness.machine.on_utterance(Utterance.from_transcript("open music"))
    assert harness.commands == [("open music", ActivationState.IDLE)]
    assert harness.statuses == [
        ActivationState.IDLE,
        ActivationState.ACTIVATED,
        ActivationState.LISTENING_FOR_COMMAND,
        ActivationState.IDLE,
    ]


def test_second_utterance_after_command_is_not_a_command(harness: Harness, scheduler) -> None:
    harness.machine.start_system()
    harness.machine.on_gesture()
    scheduler.advance(2.5)
    harness.machine.on_utterance(Utterance("open music"))
    harness.machine.on_utterance(Utterance("open files"))
    assert [text for text, _ in harness.commands] == ["open music"]


def test_simultaneous_triggers_activate_once(harness: Harness, scheduler) -> None:
    harness.machine.start_system()
    harness.machine.on_gesture()
    harness.machine.on_utterance(Utterance("control"))
    assert harness.spoken == ["Yes, how may I help you?"]
    assert len(scheduler.pending()) == 1


def test_cooldown_spans_a_full_cycle(harness: Harness, scheduler) -> None:
    harness.machine.start_system()
    harness.machine.on_gesture()
    scheduler.advance(2.5)
    harness.machine.on_utterance(Utterance("what time is it"))
    assert harness.machine.state is ActivationState.IDLE

    scheduler.advance(1.0)  # 3.5s after activation
    harness.machine.on_utterance(Utterance("control"))
    assert harness.machine.state is ActivationState.IDLE

    scheduler.advance(1.5)  # 5.0s after activation
    harness.machine.on_gesture()
    assert harness.machine.state is ActivationState.ACTIVATED


def test_reentrant_event_is_queued_behind_current_one(scheduler) -> None:
    seen: List[ActivationState] = []
    holder = {}

    def handle(text: str) -> None:
        holder["machine"].on_utterance(Utterance("control"))
        seen.append(holder["machine"].state)

    machine = ActivationMachine(SETTINGS, scheduler, speak=lambda _t: None, command_handler=handle)
    holder["machine"] = machine
    machine.start_system()
    machine.on_gesture()
    scheduler.advance(2.5)
    scheduler.advance(3.0)
    assert machine.state is ActivationState.LISTENING_FOR_COMMAND

    machine.on_utterance(Utterance("open music"))
    # The wake word raised inside the handler ran only after it returned.
    assert seen == [ActivationState.IDLE]
    assert machine.state is ActivationState.ACTIVATED
