"""Transcription-related data models."""

from dataclasses import dataclass
from typing import Optional

from .audio import AudioBlob


@dataclass
class MergedTranscript:
    """Outcome of merging one fragment into the rolling transcript."""
    transcript: str
    appended: Optional[str] = None  # Words actually added to the window
    is_new: bool = False            # False when the fragment was empty or a repeat
    dispatch: bool = False          # True when the transcript should get a coaching response


@dataclass
class AnalysisResult:
    """Result of one primary analysis round trip."""
    transcription: str = ""
    response: str = ""


@dataclass
class AnalysisRequest:
    """One outbound request to the analysis endpoint."""
    last_transcription: str
    resume_id: Optional[str] = None
    job_id: Optional[str] = None
    audio: Optional[AudioBlob] = None
