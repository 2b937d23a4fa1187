"""Frame differencing and palm-hold detection with hysteresis.

A deliberate palm hold looks like a burst of large motion (the hand entering
the frame) followed by a run of near-still frames. Ambient motion is either
continuously variable or brief, so it rarely produces that two-phase shape.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np

from .state import GestureDetectionState

LOGGER = logging.getLogger(__name__)

MOTION_LOG_FLOOR_K = 1000
HOLD_LOG_EVERY = 5


@dataclass(frozen=True)
class GestureThresholds:
    """Motion thresholds in k-units plus hold and abandon timing."""

    motion: int = 3000
    stable: int = 400
    idle: int = 100
    confirm_frames: int = 20
    idle_timeout_s: float = 3.0
    sample_stride: int = 2

    def __post_init__(self) -> None:
        if not self.idle < self.stable < self.motion:
            raise ValueError("thresholds must satisfy idle < stable < motion")
        if self.confirm_frames < 1:
            raise ValueError("confirm_frames must be at least 1")
        if self.sample_stride < 1:
            raise ValueError("sample_stride must be at least 1")
        if self.idle_timeout_s < 0:
            raise ValueError("idle_timeout_s must be non-negative")


def motion_magnitude(previous: np.ndarray, current: np.ndarray, stride: int = 2) -> int:
    """Sum of absolute luminance deltas over a sub-sampled frame, in k-units."""
    if previous.shape != current.shape:
        raise ValueError(f"frame shape changed from {previous.shape} to {current.shape}")
    prev = np.asarray(previous).reshape(-1)[::stride].astype(np.int32)
    cur = np.asarray(current).reshape(-1)[::stride].astype(np.int32)
    diff = int(np.abs(cur - prev).sum())
    return int(round(diff / 1000.0))


def classify_motion(
    magnitude: int,
    now: float,
    st: GestureDetectionState,
    thresholds: GestureThresholds,
) -> Tuple[bool, GestureDetectionState]:
    """Advance the hold detector by one motion sample.

    Returns ``(confirmed, state)``; ``confirmed`` is True on exactly the frame
    that completes the hold.
    """
    confirmed = False

    if magnitude >= thresholds.motion:
        if not st.armed:
            LOGGER.info("Palm detected - hold still...")
        st.armed = True
        st.stable_frame_count = 0
        st.quiet_since = None
        return confirmed, st

    if not st.armed:
        return confirmed, st

    if magnitude < thresholds.stable:
        st.stable_frame_count += 1
        if st.stable_frame_count % HOLD_LOG_EVERY == 0:
            LOGGER.info("Holding... %d/%d", st.stable_frame_count, thresholds.confirm_frames)
        if st.stable_frame_count >= thresholds.confirm_frames:
            LOGGER.info("Palm held for %d frames", st.stable_frame_count)
            confirmed = True
            st.disarm()
            return confirmed, st
    else:
        if st.stable_frame_count > 0:
            LOGGER.debug("Too much movement - hold still")
        st.stable_frame_count = 0

    # Sustained near-zero motion with no renewed big motion abandons the hold.
    if magnitude < thresholds.idle:
        if st.quiet_since is None:
            st.quiet_since = now
        elif now - st.quiet_since >= thresholds.idle_timeout_s:
            LOGGER.info("Palm detection abandoned after %.1fs of stillness", now - st.quiet_since)
            st.disarm()
    else:
        st.quiet_since = None

    return confirmed, st


class GestureDetector:
    """Consumes frames and reports a confirmed palm hold."""

    def __init__(
        self,
        on_gesture: Callable[[], None],
        thresholds: Optional[GestureThresholds] = None,
    ) -> None:
        self._on_gesture = on_gesture
        self._thresholds = thresholds or GestureThresholds()
        self._state = GestureDetectionState()
        self._last_magnitude: Optional[int] = None

    @property
    def state(self) -> GestureDetectionState:
        return self._state

    @property
    def thresholds(self) -> GestureThresholds:
        return self._thresholds

    @property
    def last_magnitude(self) -> Optional[int]:
        return self._last_magnitude

    def process_frame(self, frame: np.ndarray, now: float, evaluate: bool = True) -> bool:
        """Buffer ``frame`` and, when ``evaluate`` is set, classify the motion.

        Frames outside the idle state are still buffered so the next
        evaluated frame is compared against a fresh neighbour.
        """
        previous = self._state.last_frame
        self._state.last_frame = frame
        if previous is None or not evaluate:
            return False
        if previous.shape != frame.shape:
            LOGGER.debug("Frame size changed; restarting comparison")
            return False

        magnitude = motion_magnitude(previous, frame, self._thresholds.sample_stride)
        self._last_magnitude = magnitude
        if magnitude > MOTION_LOG_FLOOR_K:
            LOGGER.debug("Motion: %dk (need %dk)", magnitude, self._thresholds.motion)
        return self.feed_magnitude(magnitude, now)

    def feed_magnitude(self, magnitude: int, now: float) -> bool:
        confirmed, self._state = classify_motion(magnitude, now, self._state, self._thresholds)
        if confirmed:
            self._on_gesture()
        return confirmed

    def reset(self) -> None:
        self._state = GestureDetectionState()
        self._last_magnitude = None


__all__ = [
    "GestureDetector",
    "GestureThresholds",
    "classify_motion",
    "motion_magnitude",
]
