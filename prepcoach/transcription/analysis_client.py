"""Client for the streaming interview analysis endpoint."""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Optional

import aiohttp
from pydantic import ValidationError

from ..errors import NetworkError, StreamParseError
from ..models.audio import AudioBlob
from ..models.events import AnalysisEvent, AnalysisResponse
from ..models.transcription import AnalysisRequest, AnalysisResult

logger = logging.getLogger(__name__)

EVENT_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

_ABORTED = object()


class CancellationToken:
    """Abort signal shared between the caller and a running request."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


def decode_event_line(line: str) -> Optional[AnalysisEvent]:
    """Decode one line of a server-sent-event stream.

    Returns None for blank lines, comments, non-data fields and the
    ``[DONE]`` sentinel.

    Raises:
        StreamParseError: If the data payload does not match the event schema
    """
    line = line.strip()
    if not line.startswith(EVENT_PREFIX):
        return None

    payload = line[len(EVENT_PREFIX):].strip()
    if not payload or payload == DONE_SENTINEL:
        return None

    try:
        return AnalysisEvent.model_validate_json(payload)
    except ValidationError as e:
        raise StreamParseError(line, str(e)) from e


async def _until_cancelled(awaitable: Awaitable[Any], token: Optional[CancellationToken]) -> Any:
    """Await ``awaitable`` unless ``token`` fires first, in which case return _ABORTED."""
    if token is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()

    if task.cancelled():
        return _ABORTED
    return task.result()


class RemoteAnalysisClient:
    """Sends utterances to the analysis endpoint and reads streamed replies."""

    def __init__(self,
                 endpoint: str,
                 timeout_seconds: float = 30.0,
                 resume_id: Optional[str] = None,
                 job_id: Optional[str] = None):
        """Initialize the analysis client.

        Args:
            endpoint: URL of the analysis endpoint
            timeout_seconds: Connect timeout and maximum wait between stream reads
            resume_id: Optional resume document id sent for contextual coaching
            job_id: Optional job description document id sent for contextual coaching
        """
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.resume_id = resume_id
        self.job_id = job_id

        logger.info(f"RemoteAnalysisClient initialized for endpoint: {endpoint}")

    def _timeout(self) -> aiohttp.ClientTimeout:
        # No total limit: a coaching stream may legitimately stay open a while
        return aiohttp.ClientTimeout(total=None,
                                     sock_connect=self.timeout_seconds,
                                     sock_read=self.timeout_seconds)

    def _build_form(self, request: AnalysisRequest) -> aiohttp.MultipartWriter:
        writer = aiohttp.MultipartWriter("form-data")

        part = writer.append(request.last_transcription)
        part.set_content_disposition("form-data", name="lastTranscription")
        if request.resume_id:
            part = writer.append(request.resume_id)
            part.set_content_disposition("form-data", name="resumeId")
        if request.job_id:
            part = writer.append(request.job_id)
            part.set_content_disposition("form-data", name="jobId")
        if request.audio is not None:
            extension = request.audio.mime_type.split(";")[0].split("/")[-1]
            part = writer.append(request.audio.data, {"Content-Type": request.audio.mime_type})
            part.set_content_disposition("form-data", name="audio", filename=f"audio.{extension}")

        return writer

    async def _iter_events(self,
                           response: aiohttp.ClientResponse,
                           token: Optional[CancellationToken]) -> AsyncIterator[AnalysisEvent]:
        while True:
            line = await _until_cancelled(response.content.readline(), token)
            if line is _ABORTED:
                logger.info("Analysis stream aborted")
                return
            if not line:
                return  # Connection closed: normal end of stream

            try:
                event = decode_event_line(line.decode("utf-8", errors="replace"))
            except StreamParseError as e:
                logger.warning(f"Skipping event: {e}")
                continue
            if event is not None:
                yield event

    async def send(self,
                   request: AnalysisRequest,
                   token: Optional[CancellationToken] = None) -> AsyncIterator[str]:
        """Post ``request`` and yield the accumulated response text as it streams in.

        Each yielded value is the full text so far. Cancelling ``token`` ends the
        sequence quietly; network failures are logged and end it early.
        """
        if token is not None and token.cancelled:
            return

        logger.debug(f"Requesting analysis stream for: {request.last_transcription!r}")
        try:
            async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                response = await _until_cancelled(
                    session.post(self.endpoint, data=self._build_form(request)), token)
                if response is _ABORTED:
                    logger.info("Analysis request aborted before response")
                    return

                async with response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"Analysis endpoint error: {response.status} - {error_text}")
                        return

                    async for event in self._iter_events(response, token):
                        if event.text:
                            yield event.text
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Analysis stream failed: {e}")

    def stream_coaching(self,
                        question: str,
                        token: Optional[CancellationToken] = None) -> AsyncIterator[str]:
        """Stream a coaching response for ``question`` with the configured context ids."""
        request = AnalysisRequest(last_transcription=question,
                                  resume_id=self.resume_id,
                                  job_id=self.job_id)
        return self.send(request, token)

    async def transcribe(self,
                         blob: AudioBlob,
                         last_transcription: str,
                         resume_id: Optional[str] = None,
                         job_id: Optional[str] = None) -> AnalysisResult:
        """Send captured audio and return the recognized fragment.

        ``resume_id`` and ``job_id`` default to the ids the client was built with.

        The endpoint may answer with JSON ``{transcription, response, error}`` or
        with an event stream whose events carry ``transcription`` and ``text``.

        Raises:
            NetworkError: If the request fails or the endpoint reports an error
        """
        request = AnalysisRequest(last_transcription=last_transcription,
                                  resume_id=resume_id or self.resume_id,
                                  job_id=job_id or self.job_id,
                                  audio=blob)

        logger.debug(f"Sending {blob.size} bytes of {blob.mime_type} for analysis; "
                     f"last transcription: {last_transcription!r}")
        try:
            async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                async with session.post(self.endpoint, data=self._build_form(request)) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise NetworkError(f"Analysis endpoint error: {response.status} - {error_text}")

                    if response.content_type == "text/event-stream":
                        result = AnalysisResult()
                        async for event in self._iter_events(response, None):
                            if event.transcription is not None:
                                result.transcription = event.transcription
                            if event.text:
                                result.response = event.text
                        return result

                    body = AnalysisResponse.model_validate(await response.json())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Analysis request failed: {e}") from e
        except ValueError as e:
            # Undecodable JSON as well as pydantic ValidationError
            raise NetworkError(f"Malformed analysis response: {e}") from e

        if body.error:
            raise NetworkError(f"Analysis endpoint error: {body.error}")
        return AnalysisResult(transcription=body.transcription, response=body.response)
