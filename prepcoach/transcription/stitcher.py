"""Stitches partial transcriptions into a rolling, deduplicated transcript.

Speech recognizers extending a hypothesis often repeat the trailing words
of their previous result. Before a fragment joins the rolling window, the
longest run of words it re-states from the end of the current transcript
is dropped, and fragments already seen verbatim are ignored.
"""

import re
import logging
from collections import deque
from typing import Deque, List, Sequence, Set

from ..models.transcription import MergedTranscript

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 3

QUESTION_PATTERNS = [
    re.compile(r"\?$"),
    re.compile(r"^(what|how|why|when|where|who|which|whose|whom|can|could|should|would|will"
               r"|do|does|did|is|are|am|was|were|has|have|had)\b", re.IGNORECASE),
    re.compile(r"^(tell me|describe|explain|share|elaborate)\b", re.IGNORECASE),
]
TERMINAL_PUNCTUATION = re.compile(r"[.!?]$")


def find_overlap(prev: Sequence[str], current: Sequence[str]) -> int:
    """Length of the longest suffix of ``prev`` that is a prefix of ``current``."""
    max_overlap = 0
    for i in range(1, min(len(prev), len(current)) + 1):
        if list(prev[-i:]) == list(current[:i]):
            max_overlap = i
    return max_overlap


def is_question(text: str) -> bool:
    clean_text = text.strip()
    return any(pattern.search(clean_text) for pattern in QUESTION_PATTERNS)


def is_complete_sentence(text: str) -> bool:
    return bool(TERMINAL_PUNCTUATION.search(text.strip()))


class TranscriptStitcher:
    """Owns the rolling transcript, the seen-fragment set and the last question."""

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE):
        self.window_size = window_size
        self.window: Deque[str] = deque()
        self.history: Set[str] = set()
        self.transcript = ""
        self.last_question_processed = ""

    def merge(self, fragment: str) -> MergedTranscript:
        new_text = (fragment or "").strip()
        if not new_text or new_text in self.history:
            logger.debug(f"Duplicate or empty transcription, skipping: {new_text!r}")
            return MergedTranscript(transcript=self.transcript)

        self.history.add(new_text)

        words = new_text.split()
        overlap = find_overlap(self.transcript.split(), words)
        unique_words: List[str] = words[overlap:]
        appended = " ".join(unique_words) if unique_words else None

        logger.debug(f"New transcription {new_text!r}: overlap={overlap} words, "
                     f"appending {appended!r}")

        if appended:
            self.window.append(appended)
            while len(self.window) > self.window_size:
                self.window.popleft()
            self.transcript = " ".join(self.window)

        return MergedTranscript(
            transcript=self.transcript,
            appended=appended,
            is_new=True,
            dispatch=self._should_process_new_question(self.transcript),
        )

    def _should_process_new_question(self, transcript: str) -> bool:
        if not transcript or transcript == self.last_question_processed:
            return False
        if not (is_complete_sentence(transcript) and is_question(transcript)):
            return False

        logger.info(f"New question detected: {transcript!r}")
        self.last_question_processed = transcript
        return True

    def reset(self) -> None:
        self.window.clear()
        self.history.clear()
        self.transcript = ""
        self.last_question_processed = ""
