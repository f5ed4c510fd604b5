"""Microphone capture delivering raw PCM frames from a background thread."""

import errno
import pyaudio
import logging
from threading import Thread, Event
from typing import Optional, Callable
from datetime import datetime

from ..errors import (
    DeviceError,
    DeviceErrorCause,
    DeviceUnavailableError,
    MicrophonePermissionError,
)
from ..models.audio import AudioStats


logger = logging.getLogger(__name__)

# PortAudio error codes
PA_INVALID_DEVICE = -9996
PA_DEVICE_UNAVAILABLE = -9985


def describe_device_error(error: BaseException) -> DeviceError:
    """Map a platform error raised by the microphone to a DeviceError."""
    if isinstance(error, DeviceError):
        return error

    detail = str(error)
    if isinstance(error, PermissionError):
        if error.errno == errno.EPERM:
            return DeviceUnavailableError(DeviceErrorCause.INSECURE_CONTEXT, detail)
        return MicrophonePermissionError(detail)

    if isinstance(error, OSError):
        code = error.errno
        if code == PA_INVALID_DEVICE or "no default input device" in detail.lower():
            return DeviceUnavailableError(DeviceErrorCause.NO_DEVICE, detail)
        if code == PA_DEVICE_UNAVAILABLE or code == errno.EBUSY:
            return DeviceUnavailableError(DeviceErrorCause.DEVICE_BUSY, detail)

    return DeviceUnavailableError(DeviceErrorCause.UNKNOWN, detail)


class AudioCapture:
    """Continuous microphone capture handing each PCM frame to a callback."""

    def __init__(
        self,
        callback: Callable[[bytes], None],
        on_error: Optional[Callable[[DeviceError], None]] = None,
        sample_rate: int = 16000,
        frames_per_buffer: int = 1024,
        channels: int = 1,
        format: int = pyaudio.paInt16,
    ):
        """Initialize audio capture with specified parameters.

        Args:
            callback: Receives each frame of raw 16-bit PCM, on the capture thread
            on_error: Told on the capture thread when the device fails mid-recording
            sample_rate: Audio sample rate (16kHz for speech recognition)
            frames_per_buffer: Samples read from the device per frame
            channels: Number of audio channels (1 for mono)
            format: Audio format (16-bit signed int)
        """
        self.frame_callback = callback
        self.on_error = on_error
        self.sample_rate = sample_rate
        self.frames_per_buffer = frames_per_buffer
        self.channels = channels
        self.format = format

        # Recording thread management
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_recording = False

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_frames = 0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None

    def start_recording(self) -> None:
        """Acquire the microphone and start reading in a background thread.

        Raises:
            DeviceError: If the microphone cannot be opened
        """
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        logger.info("Starting audio recording")
        try:
            self.stream = self.__open_audio_stream()
        except Exception as e:
            self._release()
            device_error = describe_device_error(e)
            logger.error(f"Could not open microphone ({device_error.cause.value}): {e}")
            raise device_error from e

        self.stop_event.clear()
        self.start_time = datetime.now()
        self.total_frames = 0

        self.recording_thread = Thread(target=self._record_continuously, daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self.is_recording = True
        self.recording_thread.start()

    def stop_recording(self) -> None:
        """Stop recording and release the device."""
        if not self.is_recording:
            logger.warning("No recording in progress")
            return

        logger.info("Stopping audio recording")
        self.stop_event.set()

        # Wait for recording thread to finish
        if self.recording_thread and self.recording_thread.is_alive():
            self.recording_thread.join(timeout=2.0)
            if self.recording_thread.is_alive():
                logger.warning("Recording thread did not stop cleanly")

        self.is_recording = False
        logger.info(f"Recording stopped. Total frames: {self.total_frames}")

    def __open_audio_stream(self):
        self.pyaudio_instance = pyaudio.PyAudio()
        stream = self.pyaudio_instance.open(
            format=self.format,
            channels=self.channels,
            rate=self.sample_rate,
            input=True,
            frames_per_buffer=self.frames_per_buffer,
            stream_callback=None
        )
        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.frames_per_buffer} samples/frame")
        return stream

    def _record_continuously(self) -> None:
        """Internal method: continuous recording loop in background thread."""
        try:
            while not self.stop_event.is_set():
                pcm = self.stream.read(self.frames_per_buffer, exception_on_overflow=False)
                self.total_frames += 1
                self.frame_callback(pcm)
        except Exception as e:
            logger.error(f"Audio capture stopped unexpectedly: {e}", exc_info=True)
            self.is_recording = False
            if self.on_error is not None:
                self.on_error(describe_device_error(e))
        finally:
            self._release()

    def _release(self) -> None:
        if self.stream is not None:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except Exception as e:
                logger.warning(f"Error closing audio stream: {e}")
            self.stream = None
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            frames_per_buffer=self.frames_per_buffer,
            total_frames=self.total_frames,
        )

    def __del__(self):
        """Ensure resources are cleaned up on deletion."""
        if self.is_recording:
            self.stop_recording()
