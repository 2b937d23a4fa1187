"""Exception and error-kind taxonomy for the activation engine."""

from __future__ import annotations

from enum import Enum


class ControlError(Exception):
    """Base class for activation engine errors."""


class PermissionDeniedError(ControlError):
    """A capture device was refused; the subsystem cannot recover on its own."""

    def __init__(self, subsystem: str, detail: str = "") -> None:
        message = f"{subsystem} permission denied"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.subsystem = subsystem


class CameraUnavailableError(PermissionDeniedError):
    """Raised when no camera can be opened."""

    def __init__(self, detail: str = "") -> None:
        super().__init__("camera", detail)


class ServiceUnavailableError(ControlError):
    """Raised when a speech backend is missing or cannot be initialised."""


class RecognitionErrorKind(Enum):
    """Error kinds reported by a recognition service."""

    NOT_ALLOWED = "not-allowed"
    SERVICE_NOT_ALLOWED = "service-not-allowed"
    NO_SPEECH = "no-speech"
    ABORTED = "aborted"
    AUDIO_CAPTURE = "audio-capture"
    NETWORK = "network"
    OTHER = "other"

    @property
    def is_permission_denied(self) -> bool:
        return self in (RecognitionErrorKind.NOT_ALLOWED, RecognitionErrorKind.SERVICE_NOT_ALLOWED)

    @classmethod
    def parse(cls, raw: object) -> "RecognitionErrorKind":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw))
        except ValueError:
            return cls.OTHER


__all__ = [
    "CameraUnavailableError",
    "ControlError",
    "PermissionDeniedError",
    "RecognitionErrorKind",
    "ServiceUnavailableError",
]
