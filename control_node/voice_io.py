"""Vosk/sounddevice recognition and pyttsx3 synthesis backends.

Both backends run work on their own threads (the PortAudio callback thread
and a TTS worker thread). Every notification is handed back through
``post`` so listeners only ever run on the event loop thread.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from pathlib import Path
from typing import Callable, Optional, Tuple

import pyttsx3
import sounddevice as sd
from vosk import KaldiRecognizer, Model, SetLogLevel

from .configuration import SpeechSettings
from .errors import RecognitionErrorKind, ServiceUnavailableError
from .speech import RecognitionListener

LOGGER = logging.getLogger(__name__)

Post = Callable[..., None]


class VoskRecognitionService:
    """Continuous offline recognizer reading int16 PCM from the microphone."""

    def __init__(self, settings: SpeechSettings, post: Post) -> None:
        self._settings = settings
        self._post = post
        self._listener: Optional[RecognitionListener] = None
        self._model: Optional[Model] = None
        self._model_error: Optional[str] = None
        self._model_lock = threading.Lock()
        self._recognizer: Optional[KaldiRecognizer] = None
        self._stream: Optional[sd.RawInputStream] = None

    def bind(self, listener: RecognitionListener) -> None:
        self._listener = listener

    def start(self) -> None:
        if self._listener is None:
            raise RuntimeError("VoskRecognitionService.start() called before bind()")
        if self._stream is not None:
            raise RuntimeError("recognition already started")

        model = self.load_model()
        try:
            self._recognizer = KaldiRecognizer(model, self._settings.sample_rate)
        except Exception as exc:  # vosk raises bare Exception
            raise ServiceUnavailableError(f"Vosk recognizer could not be created: {exc}") from exc
        try:
            stream = sd.RawInputStream(
                samplerate=self._settings.sample_rate,
                blocksize=self._settings.blocksize,
                device=self._settings.device,
                dtype="int16",
                channels=1,
                callback=self._callback,
                finished_callback=self._on_finished,
            )
            stream.start()
        except sd.PortAudioError as exc:
            LOGGER.error("Unable to open microphone: %s", exc)
            self._post(self._listener.on_error, RecognitionErrorKind.NOT_ALLOWED)
            return

        self._stream = stream
        self._post(self._listener.on_start)

    def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        stream.stop()
        stream.close()

    def load_model(self) -> Model:
        """Load the Vosk model once; may be called from a worker thread.

        A failed load is remembered, so later calls raise straight away
        instead of reading the model folder again.
        """
        with self._model_lock:
            if self._model is not None:
                return self._model
            if self._model_error is not None:
                raise ServiceUnavailableError(self._model_error)
            try:
                self._model = self._create_model()
            except ServiceUnavailableError as exc:
                self._model_error = str(exc)
                raise
            return self._model

    def _create_model(self) -> Model:
        path = Path(self._settings.model_path)
        if not path.exists():
            raise ServiceUnavailableError(f"Vosk model not found at {path}")
        SetLogLevel(-1)
        LOGGER.info("Loading Vosk model from %s", path)
        try:
            return Model(str(path))
        except Exception as exc:  # vosk raises bare Exception
            raise ServiceUnavailableError(f"Invalid Vosk model at {path}: {exc}") from exc

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            LOGGER.debug("Audio input status: %s", status)
        recognizer = self._recognizer
        if recognizer is None or not recognizer.AcceptWaveform(bytes(indata)):
            return
        result = json.loads(recognizer.Result())
        text = result.get("text", "").strip()
        if text and self._listener is not None:
            self._post(self._listener.on_result, text)

    def _on_finished(self) -> None:
        self._post(self._finish)

    def _finish(self) -> None:
        stream = self._stream
        if stream is not None and not stream.active:
            self._stream = None
            stream.close()
        if self._listener is not None:
            self._listener.on_end()


class Pyttsx3SynthesisService:
    """Serialises utterances through one pyttsx3 engine on a worker thread."""

    def __init__(self, settings: SpeechSettings, post: Post) -> None:
        self._settings = settings
        self._post = post
        self._queue: "queue.Queue[Optional[Tuple[str, Callable[[bool], None]]]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def speak(self, text: str, on_done: Callable[[bool], None]) -> None:
        self._ensure_worker()
        self._queue.put((text, on_done))

    def close(self) -> None:
        with self._lock:
            thread, self._thread = self._thread, None
        if thread is None:
            return
        self._queue.put(None)
        thread.join(timeout=1.5)

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(target=self._run, name="tts", daemon=True)
            self._thread.start()

    def _run(self) -> None:
        engine = None
        try:
            engine = pyttsx3.init()
            engine.setProperty("rate", self._settings.tts_rate)
            engine.setProperty("volume", self._settings.tts_volume)
        except (RuntimeError, OSError, ImportError) as exc:
            LOGGER.error("pyttsx3 engine failed to initialize: %s", exc)

        while True:
            item = self._queue.get()
            if item is None:
                break
            text, on_done = item
            ok = engine is not None
            if engine is not None:
                try:
                    engine.say(text)
                    engine.runAndWait()
                except RuntimeError as exc:
                    LOGGER.warning("pyttsx3 failed to speak %r: %s", text, exc)
                    ok = False
            self._post(on_done, ok)

        if engine is not None:
            engine.stop()


__all__ = ["Pyttsx3SynthesisService", "VoskRecognitionService"]
