"""Compressed encoding of PCM slices with mime type negotiation."""

import io
import logging
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import soundfile as sf

from ..errors import UnsupportedFormatError

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPES = (
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/ogg;codecs=opus",
    "audio/ogg",
)

# libsndfile (format, subtype) per mime type. Only containers whose
# concatenated segments still decode (chained Ogg) are listed; WebM has
# no libsndfile writer.
SOUNDFILE_FORMATS: Dict[str, Tuple[str, str]] = {
    "audio/ogg;codecs=opus": ("OGG", "OPUS"),
    "audio/ogg;codecs=vorbis": ("OGG", "VORBIS"),
    "audio/ogg": ("OGG", "VORBIS"),
}


def is_type_supported(mime_type: str) -> bool:
    """True if the local libsndfile build can write ``mime_type``."""
    target = SOUNDFILE_FORMATS.get(mime_type.replace(" ", "").lower())
    if target is None:
        return False
    file_format, subtype = target
    if file_format not in sf.available_formats():
        return False
    return subtype in sf.available_subtypes(file_format)


def get_supported_mime_type(preferred: Iterable[str] = DEFAULT_MIME_TYPES) -> str:
    """Return the first preferred mime type that can be encoded.

    Raises:
        UnsupportedFormatError: If none of them is supported
    """
    preferred = list(preferred)
    for mime_type in preferred:
        if is_type_supported(mime_type):
            return mime_type
    raise UnsupportedFormatError(f"No supported audio format found among {preferred}")


class ChunkEncoder:
    """Encodes 16-bit PCM slices into self-contained compressed segments."""

    def __init__(self,
                 mime_types: Iterable[str] = DEFAULT_MIME_TYPES,
                 sample_rate: int = 16000,
                 channels: int = 1):
        self.mime_types = list(mime_types)
        self.sample_rate = sample_rate
        self.channels = channels
        self.mime_type: Optional[str] = None

    def negotiate(self) -> str:
        """Pick the output mime type; must be called before ``encode``."""
        self.mime_type = get_supported_mime_type(self.mime_types)
        logger.info(f"Negotiated audio format: {self.mime_type}")
        return self.mime_type

    def encode(self, pcm: bytes) -> bytes:
        if self.mime_type is None:
            raise RuntimeError("ChunkEncoder.negotiate() must be called before encode()")
        if not pcm:
            return b''

        samples = np.frombuffer(pcm, dtype=np.int16)
        if self.channels > 1:
            samples = samples.reshape(-1, self.channels)

        file_format, subtype = SOUNDFILE_FORMATS[self.mime_type.replace(" ", "").lower()]
        out = io.BytesIO()
        sf.write(out, samples, self.sample_rate, format=file_format, subtype=subtype)
        return out.getvalue()
