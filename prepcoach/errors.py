"""Exception types raised by the PrepCoach audio pipeline."""

from enum import Enum


class PrepCoachError(Exception):
    """Base class for all PrepCoach errors."""


class DeviceErrorCause(Enum):
    """Why the microphone could not be acquired."""
    PERMISSION_DENIED = "permission_denied"
    NO_DEVICE = "no_device"
    DEVICE_BUSY = "device_busy"
    INSECURE_CONTEXT = "insecure_context"
    UNKNOWN = "unknown"


DEVICE_ERROR_MESSAGES = {
    DeviceErrorCause.PERMISSION_DENIED: "Please allow microphone access for this application.",
    DeviceErrorCause.NO_DEVICE: "Could not detect a microphone on your device.",
    DeviceErrorCause.DEVICE_BUSY: "Your microphone is busy or unavailable.",
    DeviceErrorCause.INSECURE_CONTEXT: "Media access is not allowed in this context.",
}


class DeviceError(PrepCoachError):
    """Microphone acquisition failed.

    Carries a structured cause and a human-readable message so callers can
    show a notification without inspecting the platform error.
    """

    def __init__(self, cause: DeviceErrorCause, detail: str = ""):
        self.cause = cause
        self.detail = detail
        self.message = DEVICE_ERROR_MESSAGES.get(cause) or f"Microphone error: {detail}"
        super().__init__(self.message)


class MicrophonePermissionError(DeviceError):
    """Access to the microphone was denied."""

    def __init__(self, detail: str = ""):
        super().__init__(DeviceErrorCause.PERMISSION_DENIED, detail)


class DeviceUnavailableError(DeviceError):
    """No usable microphone: missing, busy, or not allowed here."""


class UnsupportedFormatError(PrepCoachError):
    """None of the preferred audio formats can be encoded."""


class EmptyBufferError(PrepCoachError):
    """A flush was attempted on a buffer holding no audio."""


class StreamParseError(PrepCoachError):
    """A single server-sent-event line could not be decoded."""

    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"Malformed event line {line[:80]!r}: {reason}")


class NetworkError(PrepCoachError):
    """The analysis endpoint request failed."""
