"""Data models for the PrepCoach application."""

from .audio import AudioStats, AudioChunk, AudioBlob
from .session import CaptureState, Notification, NotificationVariant
from .transcription import MergedTranscript, AnalysisResult, AnalysisRequest
from .events import AnalysisEvent, AnalysisResponse

__all__ = [
    "AudioStats",
    "AudioChunk",
    "AudioBlob",
    "CaptureState",
    "Notification",
    "NotificationVariant",
    "MergedTranscript",
    "AnalysisResult",
    "AnalysisRequest",
    # Wire schemas
    "AnalysisEvent",
    "AnalysisResponse",
]
