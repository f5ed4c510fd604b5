"""Time-sliced recorder turning raw PCM into encoded chunks."""

import time
import logging
from typing import Callable, Optional

from ..models.audio import AudioChunk
from .encoder import ChunkEncoder

logger = logging.getLogger(__name__)


class ChunkedRecorder:
    """Collects PCM and emits one encoded chunk every ``timeslice_ms``."""

    def __init__(self,
                 encoder: ChunkEncoder,
                 on_chunk: Callable[[AudioChunk], None],
                 timeslice_ms: int = 200,
                 sample_rate: int = 16000,
                 channels: int = 1,
                 clock: Callable[[], float] = time.time):
        self.encoder = encoder
        self.on_chunk = on_chunk
        self.timeslice_ms = timeslice_ms
        self.clock = clock

        bytes_per_frame = channels * 2  # 16-bit audio
        frames_per_slice = max(1, int(sample_rate * timeslice_ms / 1000))
        self.slice_bytes = frames_per_slice * bytes_per_frame

        self.pending = bytearray()
        self.sequence_number = 0
        self.is_active = False

    @property
    def mime_type(self) -> Optional[str]:
        return self.encoder.mime_type

    def start(self) -> None:
        self.pending.clear()
        self.sequence_number = 0
        self.is_active = True

    def write(self, pcm: bytes) -> None:
        """Add PCM; emits every complete slice that is now available."""
        if not self.is_active or not pcm:
            return
        self.pending.extend(pcm)
        while len(self.pending) >= self.slice_bytes:
            slice_pcm = bytes(self.pending[:self.slice_bytes])
            del self.pending[:self.slice_bytes]
            self._emit(slice_pcm)

    def stop(self) -> None:
        """Emit the trailing partial slice, then stop accepting audio."""
        if not self.is_active:
            return
        self.is_active = False
        if self.pending:
            self._emit(bytes(self.pending))
            self.pending.clear()

    def _emit(self, pcm: bytes) -> None:
        data = self.encoder.encode(pcm)
        if not data:
            return
        self.sequence_number += 1
        self.on_chunk(AudioChunk(data=data, timestamp=self.clock(),
                                 sequence_number=self.sequence_number))
