"""Transcript stitching and remote analysis for PrepCoach."""

from .analysis_client import CancellationToken, RemoteAnalysisClient, decode_event_line
from .stitcher import TranscriptStitcher, find_overlap, is_question

__all__ = [
    "CancellationToken",
    "RemoteAnalysisClient",
    "TranscriptStitcher",
    "decode_event_line",
    "find_overlap",
    "is_question",
]
