"""Audio capture and level analysis module."""

from .analyser import FrequencyAnalyser
from .buffer import ChunkBuffer
from .capture import AudioCapture, describe_device_error
from .encoder import ChunkEncoder, get_supported_mime_type
from .level_meter import LevelMeter, get_audio_level
from .recorder import ChunkedRecorder
from .silence import SilenceDetector, has_significant_audio_change, should_process_audio

__all__ = [
    'AudioCapture',
    'ChunkBuffer',
    'ChunkEncoder',
    'ChunkedRecorder',
    'FrequencyAnalyser',
    'LevelMeter',
    'SilenceDetector',
    'describe_device_error',
    'get_audio_level',
    'get_supported_mime_type',
    'has_significant_audio_change',
    'should_process_audio',
]
