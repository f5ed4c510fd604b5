"""Wire schemas for the analysis endpoint."""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class AnalysisEvent(BaseModel):
    """Payload of a single ``data:`` line in the analysis event stream.

    ``text`` is the full response accumulated so far, not a delta. The
    primary audio request may also report the recognized ``transcription``.
    """
    model_config = ConfigDict(strict=True, extra="ignore")

    text: str = ""
    transcription: Optional[str] = None


class AnalysisResponse(BaseModel):
    """JSON body returned by the analysis endpoint for non-streamed replies."""
    model_config = ConfigDict(extra="ignore")

    transcription: str = ""
    response: str = ""
    error: Optional[str] = None
