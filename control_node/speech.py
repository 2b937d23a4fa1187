"""Continuous recognition session plus spoken output that never hears itself.

The coordinator owns one recognition session and one synthesis channel.
``speak`` mutes recognition synchronously before audio starts and unmutes a
grace period after the last utterance finishes, so echo and reverb tails are
dropped instead of reaching the state machine.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from .errors import RecognitionErrorKind, ServiceUnavailableError
from .scheduler import Scheduler, TimerHandle
from .state import RecognitionSession, Utterance

LOGGER = logging.getLogger(__name__)

RESTART_DELAY_S = 0.1
GRACE_PERIOD_S = 3.0


class RecognitionListener(Protocol):
    def on_start(self) -> None:
        ...

    def on_result(self, transcript: str) -> None:
        ...

    def on_error(self, kind: RecognitionErrorKind) -> None:
        ...

    def on_end(self) -> None:
        ...


class RecognitionService(Protocol):
    """Continuous, final-results-only speech recognizer."""

    def bind(self, listener: RecognitionListener) -> None:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


class SynthesisService(Protocol):
    """Text-to-speech output; ``on_done(ok)`` fires once per call."""

    def speak(self, text: str, on_done: Callable[[bool], None]) -> None:
        ...


class SpeechCoordinator:
    """Keeps recognition running and mutes it around spoken feedback."""

    def __init__(
        self,
        recognition: RecognitionService,
        synthesis: SynthesisService,
        scheduler: Scheduler,
        on_utterance: Callable[[Utterance], None],
        is_running: Callable[[], bool],
        on_notice: Optional[Callable[[str], None]] = None,
        restart_delay_s: float = RESTART_DELAY_S,
        grace_period_s: float = GRACE_PERIOD_S,
    ) -> None:
        self._recognition = recognition
        self._synthesis = synthesis
        self._scheduler = scheduler
        self._on_utterance = on_utterance
        self._is_running = is_running
        self._on_notice = on_notice or (lambda _msg: None)
        self._restart_delay_s = restart_delay_s
        self._grace_period_s = grace_period_s
        self._session = RecognitionSession()
        self._unmute_handle: Optional[TimerHandle] = None
        self._in_flight = 0
        self._started = False
        self._torn_down = False
        self._recognition.bind(self)

    @property
    def session(self) -> RecognitionSession:
        return self._session

    @property
    def paused(self) -> bool:
        return self._session.paused

    # Public API ---------------------------------------------------------------

    def start_listening(self) -> None:
        """Start the continuous recognition session once."""
        if self._started:
            LOGGER.debug("Recognition already started")
            return
        self._started = True
        try:
            self._recognition.start()
        except ServiceUnavailableError as exc:
            LOGGER.error("Speech recognition not supported: %s", exc)
            self._session.active = False
            self._session.permission_denied = True
            self._on_notice("Speech recognition not supported")
        except RuntimeError as exc:
            LOGGER.error("Voice recognition failed to start: %s", exc)
            self._on_notice("Voice recognition failed to start")

    def speak(self, text: str) -> None:
        """Speak ``text`` with recognition muted until the grace period elapses."""
        self._session.paused = True
        self._cancel_unmute()
        self._in_flight += 1
        LOGGER.info("Speaking: %s", text)
        try:
            self._synthesis.speak(text, self._on_speech_done)
        except RuntimeError as exc:
            LOGGER.warning("Speech synthesis failed to start: %s", exc)
            self._on_speech_done(False)

    def shutdown(self) -> None:
        """Stop recognition for good; no restart is attempted afterwards."""
        self._torn_down = True
        self._cancel_unmute()
        if self._session.active:
            self._recognition.stop()
        self._session.active = False

    # Recognition listener ------------------------------------------------------

    def on_start(self) -> None:
        self._session.active = True
        LOGGER.info("Voice recognition active")

    def on_result(self, transcript: str) -> None:
        if self._session.paused:
            LOGGER.debug("Ignoring input - recognition paused: %r", transcript)
            return
        utterance = Utterance.from_transcript(transcript)
        if not utterance:
            return
        LOGGER.info('Heard: "%s"', utterance.text)
        self._on_utterance(utterance)

    def on_error(self, kind: RecognitionErrorKind) -> None:
        kind = RecognitionErrorKind.parse(kind)
        if kind.is_permission_denied:
            LOGGER.error("Microphone permission denied (%s)", kind.value)
            self._session.active = False
            self._session.permission_denied = True
            self._on_notice("Microphone permission denied")
            return
        if kind in (RecognitionErrorKind.NO_SPEECH, RecognitionErrorKind.ABORTED):
            LOGGER.debug("Recognition ended quietly (%s)", kind.value)
        else:
            LOGGER.warning("Voice error: %s", kind.value)
        self._schedule_restart()

    def on_end(self) -> None:
        self._session.active = False
        if not self._torn_down:
            self._schedule_restart()

    # Internal helpers -----------------------------------------------------------

    def _schedule_restart(self) -> None:
        session = self._session
        if session.active or session.restart_pending or session.permission_denied or self._torn_down:
            return
        session.restart_pending = True
        LOGGER.debug("Recognition restart in %.0f ms", self._restart_delay_s * 1000.0)
        self._scheduler.call_later(self._restart_delay_s, self._restart)

    def _restart(self) -> None:
        session = self._session
        session.restart_pending = False
        if self._torn_down or session.active or session.permission_denied:
            return
        if not self._is_running():
            return
        try:
            self._recognition.start()
        except (RuntimeError, ServiceUnavailableError) as exc:
            LOGGER.warning("Failed to restart recognition: %s", exc)

    def _on_speech_done(self, ok: bool) -> None:
        if not ok:
            LOGGER.warning("Speech output failed; resuming listening after grace period")
        self._in_flight = max(0, self._in_flight - 1)
        self._cancel_unmute()
        self._unmute_handle = self._scheduler.call_later(self._grace_period_s, self._unmute)

    def _unmute(self) -> None:
        self._unmute_handle = None
        if self._in_flight:
            return
        self._session.paused = False
        LOGGER.debug("Recognition unmuted")

    def _cancel_unmute(self) -> None:
        if self._unmute_handle is not None:
            self._unmute_handle.cancel()
            self._unmute_handle = None


__all__ = [
    "GRACE_PERIOD_S",
    "RESTART_DELAY_S",
    "RecognitionListener",
    "RecognitionService",
    "SpeechCoordinator",
    "SynthesisService",
]
