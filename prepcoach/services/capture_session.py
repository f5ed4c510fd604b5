"""Capture session: microphone, monitoring loop and flush orchestration."""

import asyncio
import time
import logging
from collections import deque
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Deque, Dict, Optional

from ..audio.analyser import FrequencyAnalyser
from ..audio.buffer import ChunkBuffer
from ..audio.capture import AudioCapture
from ..audio.encoder import ChunkEncoder
from ..audio.level_meter import LevelMeter
from ..audio.recorder import ChunkedRecorder
from ..audio.silence import SilenceDetector, has_significant_audio_change, should_process_audio
from ..config import PrepCoachConfig
from ..errors import DeviceError, EmptyBufferError, NetworkError, UnsupportedFormatError
from ..models.audio import AudioBlob
from ..models.session import CaptureState
from ..transcription.analysis_client import CancellationToken, RemoteAnalysisClient
from ..transcription.stitcher import TranscriptStitcher
from .publisher import SessionPublisher

logger = logging.getLogger(__name__)

FLUSH_END_OF_SPEECH = "end_of_speech"
FLUSH_INTERVAL = "interval"
FLUSH_STOP = "stop"


class CaptureSession:
    """Owns one microphone session from start to stop.

    Raw PCM arrives from the capture thread and is handed to the event loop,
    where it feeds the frequency analyser and the chunked recorder. A
    monitoring task ticks once per frame, reads the level meter and decides
    whether the buffered chunks are due for analysis. Only one flush is in
    flight at a time; flush requests made while one is running are dropped
    and their chunks stay buffered for the next opportunity.
    """

    def __init__(self,
                 config: PrepCoachConfig,
                 client: RemoteAnalysisClient,
                 publisher: Optional[SessionPublisher] = None,
                 capture_factory: Optional[Callable[..., AudioCapture]] = None,
                 encoder: Optional[ChunkEncoder] = None,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize capture session.

        Args:
            config: Application configuration
            client: Client for the analysis endpoint
            publisher: Publisher for state, level and notifications
            capture_factory: Builds the capture device from a frame callback and
                a device failure callback
            encoder: Chunk encoder; built from config when omitted
            clock: Monotonic clock in seconds
        """
        self.config = config
        self.client = client
        self.publisher = publisher or SessionPublisher()
        self.capture_factory = capture_factory or self._create_audio_capture
        self.clock = clock

        self.sample_rate = config.get('audio.sample_rate', 16000)
        self.channels = config.get('audio.channels', 1)
        self.chunk_interval_ms = config.get('audio.chunk_interval_ms', 200)
        self.min_chunks_before_processing = config.get('processing.min_chunks_before_processing', 3)
        self.processing_interval_ms = config.get('processing.processing_interval_ms', 500)
        self.level_history_interval_ms = config.get('processing.level_history_interval_ms', 100)
        self.frame_interval = 1.0 / config.get('processing.frame_rate', 60)

        self.detector = SilenceDetector(
            threshold=config.get('processing.silence_threshold', 10),
            min_silence_duration_ms=config.get('processing.silence_duration_ms', 800),
        )
        self.encoder = encoder or ChunkEncoder(
            mime_types=config.get('encoder.mime_types'),
            sample_rate=self.sample_rate,
            channels=self.channels,
        )
        self.chunk_buffer = ChunkBuffer()
        self.stitcher = TranscriptStitcher()
        self.state = CaptureState()
        self.recent_levels: Deque[int] = deque(maxlen=config.get('processing.level_history_size', 10))

        # Per-session resources
        self.capture: Optional[AudioCapture] = None
        self.analyser: Optional[FrequencyAnalyser] = None
        self.level_meter: Optional[LevelMeter] = None
        self.recorder: Optional[ChunkedRecorder] = None
        self.mime_type: Optional[str] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._flush_task: Optional[asyncio.Future] = None
        self._coaching_task: Optional[asyncio.Future] = None
        self._coaching_token: Optional[CancellationToken] = None
        self._failure_task: Optional[asyncio.Future] = None
        self._cleaning_up = False
        # Bumped on every teardown; flushes from an older session are discarded
        self._generation = 0

        self._silence_start_ms: Optional[float] = None
        self._end_of_speech_pending = False
        self._last_flush_ms: Optional[float] = None
        self._level_window_start_ms: Optional[float] = None
        self._level_window_peak = 0
        self._last_published_level = 0

    def _create_audio_capture(self,
                              callback: Callable[[bytes], None],
                              on_error: Callable[[DeviceError], None]) -> AudioCapture:
        return AudioCapture(
            callback=callback,
            on_error=on_error,
            sample_rate=self.sample_rate,
            frames_per_buffer=self.config.get('audio.frames_per_buffer', 1024),
            channels=self.channels,
        )

    def _now_ms(self) -> float:
        return self.clock() * 1000.0

    def get_state(self) -> CaptureState:
        return replace(self.state)

    def _publish_state(self) -> None:
        self.publisher.publish_state(self.state)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Clear all rolling state so a new session starts from scratch."""
        logger.debug(f"Resetting session context (had transcription: {bool(self.stitcher.transcript)})")
        self.stitcher.reset()
        self.chunk_buffer.clear()
        self.recent_levels.clear()
        self._silence_start_ms = None
        self._end_of_speech_pending = False
        self._last_flush_ms = None
        self._level_window_start_ms = None
        self._level_window_peak = 0
        self._last_published_level = 0
        self.state = CaptureState()

    async def start(self) -> Dict[str, Any]:
        """Acquire the microphone and begin monitoring.

        Returns:
            Result dictionary with success status; on failure it carries a
            human-readable ``error`` and a ``cause``
        """
        if self.state.is_recording:
            return {"success": False, "error": "Already recording"}

        await self._teardown()
        self.reset()
        self._loop = asyncio.get_running_loop()

        try:
            self.mime_type = self.encoder.negotiate()
        except UnsupportedFormatError as e:
            logger.error(f"Error starting recording: {e}")
            self.publisher.notify_error("Error", str(e))
            return {"success": False, "error": str(e), "cause": "unsupported_format"}

        self.analyser = FrequencyAnalyser(
            fft_size=self.config.get('analyser.fft_size', 512),
            smoothing_time_constant=self.config.get('analyser.smoothing_time_constant', 0.5),
            min_decibels=self.config.get('analyser.min_decibels', -85.0),
            max_decibels=self.config.get('analyser.max_decibels', -10.0),
        )
        self.level_meter = LevelMeter(self.analyser)
        self.recorder = ChunkedRecorder(
            encoder=self.encoder,
            on_chunk=self.chunk_buffer.push,
            timeslice_ms=self.chunk_interval_ms,
            sample_rate=self.sample_rate,
            channels=self.channels,
        )
        self.recorder.start()

        capture = self.capture_factory(self._on_audio_frame, self._on_capture_error)
        try:
            await asyncio.to_thread(capture.start_recording)
        except DeviceError as e:
            logger.error(f"Error starting recording ({e.cause.value}): {e.detail}")
            await self._teardown()
            self.publisher.notify_error("Error", e.message)
            return {"success": False, "error": e.message, "cause": e.cause.value}

        self.capture = capture
        self.state.is_recording = True
        self._publish_state()
        self._monitor_task = asyncio.create_task(self._monitor())

        logger.info(f"Started recording ({self.mime_type})")
        self.publisher.notify("Listening Started",
                              "Speak naturally. I'll transcribe after detecting silence.")
        return {
            "success": True,
            "mime_type": self.mime_type,
            "started_at": datetime.now().isoformat(),
        }

    async def stop(self) -> Dict[str, Any]:
        """Stop recording, process the remaining audio and release everything.

        Returns:
            Result dictionary with the final transcription and response
        """
        if not self.state.is_recording or self._cleaning_up:
            return {"success": False, "error": "Not recording"}

        logger.info(f"Stopping recording, buffer: {self.chunk_buffer.get_buffer_stats()}")
        self.state.is_recording = False
        self._publish_state()
        self._cancel_monitor()
        self._abort_coaching()

        try:
            stats = None
            if self.capture is not None:
                await asyncio.to_thread(self.capture.stop_recording)
                stats = self.capture.get_recording_stats()
            if self.recorder is not None:
                self.recorder.stop()

            await self.wait_for_processing()
            pending_chunks = len(self.chunk_buffer)
            final_flush = False
            if pending_chunks > 0:
                final_flush = await self.flush(FLUSH_STOP)

            result = {
                "success": True,
                "stopped_at": datetime.now().isoformat(),
                "duration_seconds": stats.duration_seconds if stats else 0.0,
                "final_flush": final_flush,
                "final_chunks": pending_chunks,
                "transcription": self.state.transcription,
                "response": self.state.response,
            }
        finally:
            await self._teardown()
            self.publisher.notify("Listening Stopped", "Final audio processed.")
        return result

    async def close(self) -> None:
        """Release every resource without processing buffered audio."""
        self.state.is_recording = False
        await self._teardown()
        await self._drain_coaching()

    async def _teardown(self) -> None:
        """Single cleanup path shared by start, stop and close."""
        if self._cleaning_up:
            return
        self._cleaning_up = True
        try:
            self._cancel_monitor()
            self._abort_coaching()
            await self._cancel_flush()
            self._generation += 1

            if self.capture is not None:
                if self.capture.is_recording:
                    await asyncio.to_thread(self.capture.stop_recording)
                self.capture = None

            self.recorder = None
            self.analyser = None
            self.level_meter = None
            self.chunk_buffer.clear()
            self.recent_levels.clear()
            self.stitcher.reset()
            self._silence_start_ms = None
            self._end_of_speech_pending = False
            self._level_window_start_ms = None
            self.state.is_recording = False
            self.state.is_processing = False
            logger.debug("Cleanup completed")
        finally:
            self._cleaning_up = False

    def _cancel_monitor(self) -> None:
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            self._monitor_task = None

    async def _cancel_flush(self) -> None:
        task = self._flush_task
        self._flush_task = None
        if task is not None and not task.done():
            logger.info("Cancelling in-flight analysis request")
            task.cancel()
            await asyncio.wait({task})

    def _on_capture_error(self, error: DeviceError) -> None:
        """Runs on the capture thread when the device fails mid-recording."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._handle_capture_failure, error)
        except RuntimeError as e:
            logger.debug(f"Dropping capture failure, event loop unavailable: {e}")

    def _handle_capture_failure(self, error: DeviceError) -> None:
        if not self.state.is_recording or self._cleaning_up:
            return
        logger.error(f"Microphone failed during recording ({error.cause.value}): {error.detail}")
        self.state.is_recording = False
        self._publish_state()
        self.publisher.notify_error("Error", error.message)
        self._failure_task = asyncio.ensure_future(self._teardown())

    # ------------------------------------------------------------------
    # Audio ingestion and monitoring
    # ------------------------------------------------------------------

    def _on_audio_frame(self, pcm: bytes) -> None:
        """Runs on the capture thread; hands the frame to the event loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._ingest_frame, pcm)
        except RuntimeError as e:
            logger.debug(f"Dropping audio frame, event loop unavailable: {e}")

    def _ingest_frame(self, pcm: bytes) -> None:
        if self.analyser is None or self.recorder is None:
            return
        self.analyser.push_pcm(pcm)
        self.recorder.write(pcm)

    async def _monitor(self) -> None:
        while self.state.is_recording and not self._cleaning_up:
            self.tick()
            await asyncio.sleep(self.frame_interval)

    def tick(self) -> Optional[str]:
        """Run one monitoring step.

        Returns:
            The flush reason if this tick started a flush, else None
        """
        if not self.state.is_recording or self.level_meter is None or self._cleaning_up:
            return None

        now = self._now_ms()
        level = self.level_meter.read()
        self._record_level(level, now)

        if has_significant_audio_change(self._last_published_level, level):
            self._last_published_level = level
            self.publisher.publish_level(level)

        reason = self._flush_due(level, now)
        if reason is None:
            return None

        blob = self._begin_flush(reason)
        if blob is None:
            return None
        if reason == FLUSH_END_OF_SPEECH:
            self._end_of_speech_pending = False
            # Speech has to happen again before the next end of speech
            self.recent_levels.clear()
        self._flush_task = asyncio.ensure_future(self._complete_flush(blob, reason, self._generation))
        return reason

    def _record_level(self, level: int, now: float) -> None:
        # History keeps one peak per interval so it spans longer than the
        # minimum silence duration.
        if self._level_window_start_ms is None:
            self._level_window_start_ms = now
            self._level_window_peak = level
        else:
            self._level_window_peak = max(self._level_window_peak, level)

        if now - self._level_window_start_ms >= self.level_history_interval_ms:
            self.recent_levels.append(self._level_window_peak)
            self._level_window_start_ms = None

    def _flush_due(self, level: int, now: float) -> Optional[str]:
        """Single flush decision per tick; end of speech wins over the interval."""
        silent = self.detector.is_silent(level)

        if silent:
            if self._silence_start_ms is None:
                self._silence_start_ms = now
            elif (not self._end_of_speech_pending
                  and self.detector.is_end_of_speech(now - self._silence_start_ms, level, self.recent_levels)):
                logger.debug(f"End of speech detected: silence={now - self._silence_start_ms:.0f}ms, "
                             f"level={level}, recent_levels={list(self.recent_levels)}")
                # Held until a flush actually takes the chunks
                self._end_of_speech_pending = True
        else:
            self._silence_start_ms = None
            self._end_of_speech_pending = False

        if len(self.chunk_buffer) < self.min_chunks_before_processing:
            return None
        if self._end_of_speech_pending:
            return FLUSH_END_OF_SPEECH
        if not silent and should_process_audio(self._last_flush_ms, now, self.processing_interval_ms):
            return FLUSH_INTERVAL
        return None

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    def _begin_flush(self, reason: str) -> Optional[AudioBlob]:
        if self.state.is_processing:
            logger.debug(f"Skipping {reason} flush - already processing "
                         f"({len(self.chunk_buffer)} chunks stay buffered)")
            return None
        try:
            blob = self.chunk_buffer.flush(self.mime_type)
        except EmptyBufferError:
            return None

        self.state.is_processing = True
        self._last_flush_ms = self._now_ms()
        self._silence_start_ms = None
        self._publish_state()
        logger.info(f"Flushing {blob.chunk_count} chunks ({blob.size} bytes) on {reason}")
        return blob

    async def _complete_flush(self, blob: AudioBlob, reason: str, generation: int) -> None:
        try:
            result = await self.client.transcribe(blob, self.stitcher.transcript)
            if generation != self._generation:
                logger.debug(f"Discarding {reason} result from a finished session")
                return
            merged = self.stitcher.merge(result.transcription)
            if merged.is_new:
                self.state.transcription = merged.transcript
            if result.response:
                self.state.response = result.response
            if merged.dispatch and reason != FLUSH_STOP and self.state.is_recording:
                self._dispatch_coaching(merged.transcript)
        except NetworkError as e:
            logger.error(f"Error processing audio: {e}")
            self.publisher.notify_error("Processing Error", str(e))
        except Exception as e:
            logger.error(f"Unexpected error processing audio: {e}", exc_info=True)
            self.publisher.notify_error("Processing Error", str(e))
        finally:
            if generation == self._generation:
                self.state.is_processing = False
                self._publish_state()

    async def flush(self, reason: str = "manual") -> bool:
        """Send the buffered chunks for analysis now.

        Returns:
            False without side effects if a flush is already in flight or
            nothing is buffered, True once the round trip has finished
        """
        blob = self._begin_flush(reason)
        if blob is None:
            return False
        task = asyncio.ensure_future(self._complete_flush(blob, reason, self._generation))
        self._flush_task = task
        # Teardown may cancel the task underneath us
        await asyncio.wait({task})
        return True

    async def wait_for_processing(self) -> None:
        """Wait for the in-flight flush, if any, to finish."""
        task = self._flush_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    # ------------------------------------------------------------------
    # Coaching responses
    # ------------------------------------------------------------------

    def _dispatch_coaching(self, question: str) -> None:
        self._abort_coaching()
        token = CancellationToken()
        self._coaching_token = token
        self.state.response = ""
        self._coaching_task = asyncio.ensure_future(self._stream_coaching(question, token))

    async def _stream_coaching(self, question: str, token: CancellationToken) -> None:
        logger.info(f"Requesting coaching response for: {question!r}")
        async for text in self.client.stream_coaching(question, token):
            if token.cancelled:
                break
            self.state.response = text
            self._publish_state()

    def _abort_coaching(self) -> None:
        if self._coaching_token is not None:
            self._coaching_token.cancel()
            self._coaching_token = None

    async def _drain_coaching(self) -> None:
        task = self._coaching_task
        if task is not None and not task.done():
            await asyncio.wait({task})
