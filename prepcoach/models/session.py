"""Session-related data models."""

from dataclasses import dataclass
from enum import Enum


@dataclass
class CaptureState:
    """User-visible state of a capture session."""
    is_recording: bool = False
    is_processing: bool = False
    transcription: str = ""
    response: str = ""


class NotificationVariant(Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


@dataclass
class Notification:
    """A short user-facing message, shown by the UI as a toast."""
    title: str
    description: str
    variant: NotificationVariant = NotificationVariant.DEFAULT
