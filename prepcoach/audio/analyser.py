"""Frequency-domain analysis of the live microphone signal."""

import logging

import numpy as np
from scipy.signal import windows

logger = logging.getLogger(__name__)


class FrequencyAnalyser:
    """Byte frequency bins over the most recent ``fft_size`` samples.

    Mirrors the behaviour of a Web Audio analyser node: a Blackman window,
    FFT magnitudes smoothed over time, converted to decibels and scaled from
    ``[min_decibels, max_decibels]`` onto ``0..255``.
    """

    def __init__(self,
                 fft_size: int = 512,
                 smoothing_time_constant: float = 0.5,
                 min_decibels: float = -85.0,
                 max_decibels: float = -10.0):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two >= 32, got {fft_size}")
        if not 0.0 <= smoothing_time_constant <= 1.0:
            raise ValueError("smoothing_time_constant must be within [0, 1]")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be lower than max_decibels")

        self.fft_size = fft_size
        self.smoothing_time_constant = smoothing_time_constant
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self._window = windows.blackman(fft_size, sym=False)
        self._samples = np.zeros(fft_size, dtype=np.float64)
        self._smoothed = np.zeros(self.frequency_bin_count, dtype=np.float64)

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def push_pcm(self, pcm: bytes) -> None:
        """Append 16-bit little-endian PCM to the sample window."""
        if not pcm:
            return
        samples = np.frombuffer(pcm, dtype=np.int16).astype(np.float64) / 32768.0
        self.push_samples(samples)

    def push_samples(self, samples: np.ndarray) -> None:
        """Append float samples in [-1, 1], keeping only the last fft_size."""
        count = len(samples)
        if count >= self.fft_size:
            self._samples[:] = samples[-self.fft_size:]
        elif count:
            self._samples = np.roll(self._samples, -count)
            self._samples[-count:] = samples

    def get_byte_frequency_data(self) -> np.ndarray:
        """Return ``frequency_bin_count`` bins as uint8 values."""
        spectrum = np.fft.rfft(self._samples * self._window)[:self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size

        tau = self.smoothing_time_constant
        self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude

        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(self._smoothed)
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.nan_to_num((decibels - self.min_decibels) * scale, neginf=0.0)
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def reset(self) -> None:
        self._samples.fill(0.0)
        self._smoothed.fill(0.0)
