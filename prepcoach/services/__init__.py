"""Services layer for PrepCoach session logic."""

from .capture_session import CaptureSession
from .publisher import SessionPublisher

__all__ = [
    "CaptureSession",
    "SessionPublisher",
]
