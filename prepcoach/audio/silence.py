"""Silence and end-of-speech heuristics over audio level readings."""

from typing import Iterable, Optional

DEFAULT_SILENCE_THRESHOLD = 10
DEFAULT_MIN_SILENCE_DURATION_MS = 800


class SilenceDetector:
    """Decides whether a level is silent and whether speech has ended.

    End of speech needs three things at once: the current level is silent,
    some recent level was not, and the silence has lasted at least
    ``min_silence_duration_ms``. A session that has been quiet since it
    started therefore never reports end of speech.
    """

    def __init__(self,
                 threshold: int = DEFAULT_SILENCE_THRESHOLD,
                 min_silence_duration_ms: float = DEFAULT_MIN_SILENCE_DURATION_MS):
        self.threshold = threshold
        self.min_silence_duration_ms = min_silence_duration_ms

    def is_silent(self, level: float) -> bool:
        return level <= self.threshold

    def was_recently_active(self, recent_levels: Iterable[float]) -> bool:
        return any(not self.is_silent(level) for level in recent_levels)

    def is_end_of_speech(self,
                         silence_duration_ms: float,
                         level: float,
                         recent_levels: Iterable[float]) -> bool:
        return (self.is_silent(level)
                and self.was_recently_active(recent_levels)
                and silence_duration_ms >= self.min_silence_duration_ms)


def has_significant_audio_change(prev_level: float,
                                 current_level: float,
                                 threshold: float = 15,
                                 hysteresis: float = 5) -> bool:
    """Level change detection with hysteresis; rising levels trip earlier."""
    difference = abs(current_level - prev_level)
    return (difference > threshold + hysteresis
            or (difference > threshold - hysteresis and current_level > prev_level))


def should_process_audio(last_processed_ms: Optional[float],
                         now_ms: float,
                         min_interval_ms: float) -> bool:
    """True once ``min_interval_ms`` has passed since the last flush."""
    if last_processed_ms is None:
        return True
    return now_ms - last_processed_ms >= min_interval_ms
