"""Tests for frame differencing and palm-hold hysteresis."""

from __future__ import annotations

from typing import List

import numpy as np
import pytest

from control_node.gesture_detect import (
    GestureDetector,
    GestureThresholds,
    classify_motion,
    motion_magnitude,
)
from control_node.state import GestureDetectionState

FRAME_S = 1.0 / 30.0


def _run(magnitudes: List[int], thresholds: GestureThresholds = GestureThresholds()) -> List[int]:
    """Feed magnitudes at 30 fps and return the indices that confirmed."""
    fired: List[int] = []
    detector = GestureDetector(on_gesture=lambda: None, thresholds=thresholds)
    for idx, magnitude in enumerate(magnitudes):
        if detector.feed_magnitude(magnitude, idx * FRAME_S):
            fired.append(idx)
    return fired


def test_motion_magnitude_scales_to_k_units() -> None:
    previous = np.zeros((100, 100), dtype=np.uint8)
    current = np.full((100, 100), 200, dtype=np.uint8)
    # 5000 sampled pixels * 200 = 1,000,000 -> 1000k
    assert motion_magnitude(previous, current, stride=2) == 1000


def test_motion_magnitude_is_symmetric_and_zero_for_identical_frames() -> None:
    rng = np.random.default_rng(7)
    a = rng.integers(0, 256, size=(48, 64), dtype=np.uint8)
    b = rng.integers(0, 256, size=(48, 64), dtype=np.uint8)
    assert motion_magnitude(a, a) == 0
    assert motion_magnitude(a, b) == motion_magnitude(b, a)


def test_motion_magnitude_rejects_shape_change() -> None:
    with pytest.raises(ValueError):
        motion_magnitude(np.zeros((4, 4)), np.zeros((4, 5)))


def test_hold_confirms_on_twentieth_stable_frame() -> None:
    fired = _run([4000] + [50] * 20)
    assert fired == [20]


def test_nineteen_stable_frames_are_not_enough() -> None:
    assert _run([4000] + [50] * 19) == []


def test_renewed_motion_discards_partial_count() -> None:
    fired = _run([4000] + [50] * 10 + [4000] + [50] * 20)
    assert fired == [31]


def test_noise_band_resets_count_without_disarming() -> None:
    st = GestureDetectionState()
    thresholds = GestureThresholds()
    classify_motion(4000, 0.0, st, thresholds)
    for i in range(5):
        classify_motion(50, (i + 1) * FRAME_S, st, thresholds)
    assert st.stable_frame_count == 5

    classify_motion(1500, 0.3, st, thresholds)
    assert st.armed is True
    assert st.stable_frame_count == 0


def test_stillness_without_big_motion_never_arms() -> None:
    assert _run([50] * 100) == []
    assert _run([1500] * 10 + [50] * 30) == []


def test_confirmation_disarms_detector() -> None:
    st = GestureDetectionState()
    thresholds = GestureThresholds(confirm_frames=3)
    classify_motion(4000, 0.0, st, thresholds)
    results = [classify_motion(10, t, st, thresholds)[0] for t in (0.1, 0.2, 0.3, 0.4)]
    assert results == [False, False, True, False]
    assert st.armed is False
    assert st.stable_frame_count == 0


def test_sustained_stillness_abandons_hold() -> None:
    # Slow camera: the hold cannot complete before the idle timeout.
    st = GestureDetectionState()
    thresholds = GestureThresholds(confirm_frames=50, idle_timeout_s=3.0)
    classify_motion(4000, 0.0, st, thresholds)
    classify_motion(20, 0.5, st, thresholds)
    classify_motion(20, 2.0, st, thresholds)
    assert st.armed is True
    classify_motion(20, 3.6, st, thresholds)
    assert st.armed is False
    assert st.stable_frame_count == 0


def test_idle_timeout_uses_current_frames_not_stale_sample() -> None:
    st = GestureDetectionState()
    thresholds = GestureThresholds(confirm_frames=50, idle_timeout_s=3.0)
    classify_motion(4000, 0.0, st, thresholds)
    classify_motion(20, 0.5, st, thresholds)
    # Near-still but above the idle floor restarts the quiet period.
    classify_motion(250, 2.0, st, thresholds)
    classify_motion(20, 3.6, st, thresholds)
    assert st.armed is True
    classify_motion(20, 6.7, st, thresholds)
    assert st.armed is False


def test_process_frame_buffers_without_evaluating() -> None:
    events = []
    detector = GestureDetector(on_gesture=lambda: events.append("palm"))
    dark = np.zeros((60, 80), dtype=np.uint8)
    bright = np.full((60, 80), 255, dtype=np.uint8)

    assert detector.process_frame(dark, 0.0) is False
    assert detector.process_frame(bright, FRAME_S, evaluate=False) is False
    assert detector.state.armed is False
    assert detector.state.last_frame is bright
    assert detector.last_magnitude is None


def test_process_frame_reports_gesture_once() -> None:
    events = []
    thresholds = GestureThresholds(motion=300, stable=40, idle=10, confirm_frames=20)
    detector = GestureDetector(on_gesture=lambda: events.append("palm"), thresholds=thresholds)
    dark = np.zeros((60, 80), dtype=np.uint8)
    bright = np.full((60, 80), 255, dtype=np.uint8)

    detector.process_frame(dark, 0.0)
    detector.process_frame(bright, FRAME_S)  # 2400 samples * 255 -> 612k
    assert detector.state.armed is True
    for i in range(25):
        detector.process_frame(bright, (i + 2) * FRAME_S)
    assert events == ["palm"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"motion": 300, "stable": 400},
        {"idle": 500},
        {"confirm_frames": 0},
        {"sample_stride": 0},
    ],
)
def test_invalid_thresholds_rejected(kwargs) -> None:
    with pytest.raises(ValueError):
        GestureThresholds(**kwargs)
