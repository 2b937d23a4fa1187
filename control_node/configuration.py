"""Configuration loading and dataclasses for the activation engine."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .gesture_detect import GestureThresholds


@dataclass(frozen=True)
class ActivationSettings:
    wake_word: str = "control"
    cooldown_s: float = 5.0
    listen_delay_s: float = 2.5

    def __post_init__(self) -> None:
        if not self.wake_word.strip():
            raise ValueError("wake_word must not be empty")
        if self.cooldown_s < 0 or self.listen_delay_s < 0:
            raise ValueError("activation timings must be non-negative")


@dataclass(frozen=True)
class CameraConfig:
    enabled: bool = True
    index: int = 0
    flip: bool = False
    width: int = 640
    height: int = 480


@dataclass(frozen=True)
class SpeechSettings:
    enabled: bool = True
    model_path: str = "models/vosk-model-small-en-us-0.15"
    sample_rate: int = 16000
    blocksize: int = 8000
    device: Any = None
    restart_delay_s: float = 0.1
    grace_period_s: float = 3.0
    tts_rate: int = 175
    tts_volume: float = 1.0

    def __post_init__(self) -> None:
        if self.restart_delay_s < 0 or self.grace_period_s < 0:
            raise ValueError("speech timings must be non-negative")
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be greater than zero")


@dataclass(frozen=True)
class LoggingConfig:
    level: str


@dataclass(frozen=True)
class AppConfig:
    activation: ActivationSettings
    gesture: GestureThresholds
    camera: CameraConfig
    speech: SpeechSettings
    logging: LoggingConfig


def load_config(path: Path) -> AppConfig:
    """Load configuration from a YAML file."""
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")

    return AppConfig(
        activation=_parse_activation(raw.get("activation", {})),
        gesture=_parse_gesture(raw.get("gesture", {})),
        camera=_parse_camera(raw.get("camera", {})),
        speech=_parse_speech(raw.get("speech", {})),
        logging=LoggingConfig(level=str(raw.get("logging", {}).get("level", "INFO"))),
    )


def _section(raw: Any) -> dict:
    if not isinstance(raw, dict):
        return {}
    return raw


def _parse_activation(raw: Any) -> ActivationSettings:
    raw = _section(raw)
    return ActivationSettings(
        wake_word=str(raw.get("wake_word", "control")).lower().strip(),
        cooldown_s=float(raw.get("cooldown_s", 5.0)),
        listen_delay_s=float(raw.get("listen_delay_s", 2.5)),
    )


def _parse_gesture(raw: Any) -> GestureThresholds:
    raw = _section(raw)
    return GestureThresholds(
        motion=int(raw.get("motion_threshold_k", 3000)),
        stable=int(raw.get("stable_threshold_k", 400)),
        idle=int(raw.get("idle_threshold_k", 100)),
        confirm_frames=int(raw.get("confirm_frames", 20)),
        idle_timeout_s=float(raw.get("idle_timeout_s", 3.0)),
        sample_stride=int(raw.get("sample_stride", 2)),
    )


def _parse_camera(raw: Any) -> CameraConfig:
    raw = _section(raw)
    return CameraConfig(
        enabled=bool(raw.get("enabled", True)),
        index=int(raw.get("index", 0)),
        flip=bool(raw.get("flip", False)),
        width=int(raw.get("width", 640)),
        height=int(raw.get("height", 480)),
    )


def _parse_speech(raw: Any) -> SpeechSettings:
    raw = _section(raw)
    return SpeechSettings(
        enabled=bool(raw.get("enabled", True)),
        model_path=str(raw.get("model_path", "models/vosk-model-small-en-us-0.15")),
        sample_rate=int(raw.get("sample_rate", 16000)),
        blocksize=int(raw.get("blocksize", 8000)),
        device=raw.get("device"),
        restart_delay_s=float(raw.get("restart_delay_s", 0.1)),
        grace_period_s=float(raw.get("grace_period_s", 3.0)),
        tts_rate=int(raw.get("tts_rate", 175)),
        tts_volume=float(raw.get("tts_volume", 1.0)),
    )


def load_default_config() -> AppConfig:
    """Load the default config.yaml shipped with the package."""
    path = Path(__file__).resolve().parent / "config.yaml"
    return load_config(path)


__all__ = [
    "ActivationSettings",
    "AppConfig",
    "CameraConfig",
    "LoggingConfig",
    "SpeechSettings",
    "load_config",
    "load_default_config",
]
