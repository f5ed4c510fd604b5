"""Chunk buffer that batches recorder output for analysis."""

import logging
import threading
from typing import List

from ..errors import EmptyBufferError
from ..models.audio import AudioBlob, AudioChunk

logger = logging.getLogger(__name__)


class ChunkBuffer:
    """Ordered list of encoded chunks, emptied on every flush.

    A flushed chunk belongs to exactly one blob; the buffer never hands the
    same chunk out twice.
    """

    def __init__(self):
        self.chunks: List[AudioChunk] = []
        self.lock = threading.Lock()
        self.total_bytes = 0

    def __len__(self) -> int:
        with self.lock:
            return len(self.chunks)

    def push(self, chunk: AudioChunk) -> None:
        """Append a chunk; zero-size chunks are ignored."""
        if not chunk.data:
            return

        with self.lock:
            self.chunks.append(chunk)
            self.total_bytes += chunk.size

        logger.debug(f"Buffered chunk #{chunk.sequence_number}: {chunk.size} bytes, "
                     f"{len(self.chunks)} chunks ({self.total_bytes} bytes) pending")

    def flush(self, mime_type: str) -> AudioBlob:
        """Concatenate all buffered chunks into one blob and clear the buffer.

        Raises:
            EmptyBufferError: If there is no audio to flush
        """
        with self.lock:
            valid_chunks = [chunk for chunk in self.chunks if chunk.size > 0]
            if not valid_chunks:
                raise EmptyBufferError("No valid audio chunks to process")

            blob = AudioBlob(
                data=b''.join(chunk.data for chunk in valid_chunks),
                mime_type=mime_type,
                chunk_count=len(valid_chunks),
            )
            self.chunks = []
            self.total_bytes = 0

        logger.debug(f"Flushed {blob.chunk_count} chunks into {blob.size} byte blob ({mime_type})")
        return blob

    def get_buffer_stats(self) -> dict:
        """Get buffer statistics."""
        with self.lock:
            oldest_timestamp = self.chunks[0].timestamp if self.chunks else None
            newest_timestamp = self.chunks[-1].timestamp if self.chunks else None
            return {
                "chunk_count": len(self.chunks),
                "total_bytes": self.total_bytes,
                "oldest_timestamp": oldest_timestamp,
                "newest_timestamp": newest_timestamp,
            }

    def clear(self) -> None:
        """Clear the buffer."""
        with self.lock:
            self.chunks = []
            self.total_bytes = 0
        logger.debug("Chunk buffer cleared")
