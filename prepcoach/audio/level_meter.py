"""Speech-weighted loudness meter."""

import math

import numpy as np

from .analyser import FrequencyAnalyser

# Decibel range mapped onto 0..100
LEVEL_FLOOR_DB = -85.0
LEVEL_CEILING_DB = -10.0
SPEECH_BAND_WEIGHT = 2.0


def get_audio_level(frequency_data: np.ndarray) -> int:
    """Normalized 0..100 loudness of one set of byte frequency bins.

    The lowest quarter of the bins carries most speech energy and counts
    double in the mean square.
    """
    bin_count = len(frequency_data)
    if bin_count == 0:
        return 0

    values = np.asarray(frequency_data, dtype=np.float64)
    weights = np.ones(bin_count)
    weights[np.arange(bin_count) < bin_count / 4] = SPEECH_BAND_WEIGHT

    rms = math.sqrt(float(np.sum(values * values * weights)) / float(np.sum(weights)))
    if rms <= 0.0:
        return 0

    db = 20.0 * math.log10(rms / 128.0)
    span = LEVEL_CEILING_DB - LEVEL_FLOOR_DB
    normalized = max(0.0, min(100.0, (db - LEVEL_FLOOR_DB) * (100.0 / span)))
    return int(round(normalized))


class LevelMeter:
    """Reads the current level from an analyser on demand."""

    def __init__(self, analyser: FrequencyAnalyser):
        self.analyser = analyser

    def read(self) -> int:
        return get_audio_level(self.analyser.get_byte_frequency_data())
