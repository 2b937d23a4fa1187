"""Entrypoint wiring the activation engine onto an asyncio event loop."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional

from .activation import ActivationMachine
from .command_router import CommandRouter
from .configuration import AppConfig, load_config, load_default_config
from .errors import PermissionDeniedError, ServiceUnavailableError
from .gesture_detect import GestureDetector
from .scheduler import AsyncioScheduler
from .speech import SpeechCoordinator
from .state import ActivationState, Utterance

if TYPE_CHECKING:  # pragma: no cover
    from .camera_interface import FrameSource
    from .voice_io import VoskRecognitionService

LOGGER = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Hands-free voice and palm activation front-end.")
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration YAML. Defaults to bundled config.yaml if omitted.",
    )
    parser.add_argument("--name", help="Name used to personalise greetings.")
    parser.add_argument("--no-camera", action="store_true", help="Disable the palm gesture trigger.")
    parser.add_argument("--no-voice", action="store_true", help="Disable speech recognition.")
    return parser.parse_args()


def log_status(old_state: ActivationState, new_state: ActivationState) -> None:
    LOGGER.info("Status: %s", new_state.label)


def notify_user(message: str) -> None:
    LOGGER.warning("Notice: %s", message)


async def gesture_loop(
    source: "FrameSource",
    detector: GestureDetector,
    machine: ActivationMachine,
    scheduler: AsyncioScheduler,
) -> None:
    """Feed camera frames to the detector until cancelled or the camera fails."""
    try:
        await asyncio.to_thread(source.open)
    except PermissionDeniedError as exc:
        LOGGER.error("Camera access denied: %s", exc)
        notify_user("Camera access denied")
        return
    LOGGER.info("Camera active")
    try:
        while machine.is_running():
            frame = await asyncio.to_thread(source.capture)
            if frame is None:
                await asyncio.sleep(0)
                continue
            detector.process_frame(
                frame,
                scheduler.now(),
                evaluate=machine.state is ActivationState.IDLE,
            )
    except asyncio.CancelledError:
        LOGGER.info("Gesture loop cancelled")
        raise
    finally:
        await asyncio.to_thread(source.close)


class ControlApp:
    """Composes the detectors, the speech coordinator and the state machine."""

    def __init__(
        self,
        config: AppConfig,
        scheduler: AsyncioScheduler,
        use_camera: bool = True,
        use_voice: bool = True,
        frame_source: Optional[Callable[[], "FrameSource"]] = None,
    ) -> None:
        self._config = config
        self._scheduler = scheduler
        self._frame_source = frame_source or self._default_frame_source
        self._tasks: List[asyncio.Task[None]] = []
        self._closers: List[Callable[[], None]] = []

        speech_cfg = config.speech
        self.speech: Optional[SpeechCoordinator] = None
        self.recognition: Optional["VoskRecognitionService"] = None
        if use_voice and speech_cfg.enabled:
            from .voice_io import Pyttsx3SynthesisService, VoskRecognitionService

            synthesis = Pyttsx3SynthesisService(speech_cfg, scheduler.call_soon_threadsafe)
            self._closers.append(synthesis.close)
            self.recognition = VoskRecognitionService(speech_cfg, scheduler.call_soon_threadsafe)
            self.speech = SpeechCoordinator(
                self.recognition,
                synthesis,
                scheduler,
                on_utterance=self._on_utterance,
                is_running=self._is_running,
                on_notice=notify_user,
                restart_delay_s=speech_cfg.restart_delay_s,
                grace_period_s=speech_cfg.grace_period_s,
            )

        self.router = CommandRouter(speak=self._speak)
        self.machine = ActivationMachine(
            config.activation,
            scheduler,
            speak=self._speak,
            command_handler=self.router.handle,
            status_hooks=(log_status,),
        )
        self.detector = GestureDetector(self.machine.on_gesture, config.gesture)

        if use_camera and config.camera.enabled:
            self.machine.add_detector(self._start_camera)
        if self.speech is not None:
            self.machine.add_detector(self.speech.start_listening)

    async def prepare(self) -> None:
        """Load the speech model on a worker thread before the system starts."""
        if self.recognition is None:
            return
        try:
            await asyncio.to_thread(self.recognition.load_model)
        except ServiceUnavailableError as exc:
            # The coordinator reports it when listening starts.
            LOGGER.debug("Speech model unavailable: %s", exc)

    def start(self, user_name: Optional[str] = None) -> bool:
        return self.machine.start_system(user_name)

    async def wait(self) -> None:
        for task in list(self._tasks):
            try:
                await task
            except Exception:
                LOGGER.exception("Gesture detection stopped")
                notify_user("Gesture detection stopped")
        # Camera path gone; keep serving voice triggers.
        await asyncio.Event().wait()

    async def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        if self.speech is not None:
            self.speech.shutdown()
        for close in self._closers:
            close()

    def _default_frame_source(self) -> "FrameSource":
        from .camera_interface import CameraFrameSource

        return CameraFrameSource(self._config.camera)

    def _start_camera(self) -> None:
        source = self._frame_source()
        self._tasks.append(
            asyncio.create_task(gesture_loop(source, self.detector, self.machine, self._scheduler))
        )

    def _speak(self, text: str) -> None:
        if self.speech is None:
            LOGGER.info("Say: %s", text)
            return
        self.speech.speak(text)

    def _on_utterance(self, utterance: Utterance) -> None:
        self.machine.on_utterance(utterance)

    def _is_running(self) -> bool:
        return self.machine.is_running()


async def async_main(args: argparse.Namespace) -> None:
    config = load_config(args.config) if args.config else load_default_config()
    logging.basicConfig(level=getattr(logging, config.logging.level.upper(), logging.INFO))

    scheduler = AsyncioScheduler(asyncio.get_running_loop())
    app = ControlApp(config, scheduler, use_camera=not args.no_camera, use_voice=not args.no_voice)
    try:
        await app.prepare()
        app.start(args.name)
        await app.wait()
    finally:
        await app.close()


def main() -> None:
    args = parse_args()
    try:
        asyncio.run(async_main(args))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted by user")


if __name__ == "__main__":
    main()
