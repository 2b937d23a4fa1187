"""OpenCV frame source feeding the gesture detector."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional, Protocol

import numpy as np

try:
    import cv2  # type: ignore[import]
except ImportError as exc:  # pragma: no cover - dependency missing
    raise RuntimeError(
        "OpenCV (cv2) is required for control_node.camera_interface"
    ) from exc

from .configuration import CameraConfig
from .errors import CameraUnavailableError

LOGGER = logging.getLogger(__name__)


class FrameSource(Protocol):
    """Capture side of the camera as used by the gesture loop."""

    def open(self) -> None:
        ...

    def capture(self) -> Optional[np.ndarray]:
        ...

    def close(self) -> None:
        ...


class CameraFrameSource:
    """Reads fixed-size luminance frames from a local camera."""

    def __init__(self, config: CameraConfig) -> None:
        self._config = config
        self._cap: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()
        self._fps = 0.0
        self._last_frame_ts = time.perf_counter()

    @property
    def fps(self) -> float:
        return self._fps

    def open(self) -> None:
        """Open the configured camera, trying platform backends in order."""
        with self._lock:
            if self._cap is not None:
                return

        index = self._config.index
        tried = []
        for api in (getattr(cv2, "CAP_DSHOW", 0), getattr(cv2, "CAP_MSMF", 0), getattr(cv2, "CAP_ANY", 0)):
            try:
                cap = cv2.VideoCapture(index, api)
            except cv2.error as exc:
                tried.append((api, False))
                LOGGER.debug("VideoCapture(%s, %s) raised %s", index, api, exc)
                continue
            tried.append((api, bool(cap.isOpened())))
            if cap.isOpened():
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._config.width)
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._config.height)
                with self._lock:
                    self._cap = cap
                LOGGER.info("Camera opened at index=%s with API=%s", index, api)
                return
            cap.release()

        LOGGER.error("Unable to open camera index %s; tried apis=%s", index, tried)
        raise CameraUnavailableError(f"no backend could open camera index {index}")

    def capture(self) -> Optional[np.ndarray]:
        """Return the current frame as a 2D luminance array, or None on a dropped read."""
        with self._lock:
            cap = self._cap
        if cap is None:
            return None
        ok, frame = cap.read()
        if not ok or frame is None:
            # Give the camera a moment before retrying
            time.sleep(0.05)
            return None
        self._update_fps()
        if self._config.flip:
            frame = cv2.flip(frame, 1)
        if (frame.shape[1], frame.shape[0]) != (self._config.width, self._config.height):
            frame = cv2.resize(frame, (self._config.width, self._config.height))
        return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)

    def close(self) -> None:
        with self._lock:
            cap, self._cap = self._cap, None
        if cap is not None:
            cap.release()
            LOGGER.info("Camera released")

    def _update_fps(self) -> None:
        now = time.perf_counter()
        delta = now - self._last_frame_ts
        self._last_frame_ts = now
        if delta > 0:
            self._fps = 0.9 * self._fps + 0.1 * (1.0 / delta)


__all__ = ["CameraFrameSource", "FrameSource"]
