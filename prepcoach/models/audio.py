"""Audio-related data models."""

from dataclasses import dataclass


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    frames_per_buffer: int
    total_frames: int


@dataclass
class AudioChunk:
    """One encoded slice of audio produced by the recorder."""
    data: bytes
    timestamp: float  # Time when this chunk was emitted
    sequence_number: int

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class AudioBlob:
    """Concatenated chunks ready to be sent for analysis."""
    data: bytes
    mime_type: str
    chunk_count: int

    @property
    def size(self) -> int:
        return len(self.data)
