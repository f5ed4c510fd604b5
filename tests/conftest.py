"""Pytest configuration and fixtures for PrepCoach tests."""

import asyncio
import logging
from dataclasses import replace
from unittest.mock import Mock, patch

import numpy as np
import pytest

from prepcoach.config import PrepCoachConfig
from prepcoach.models.audio import AudioChunk, AudioStats
from prepcoach.models.session import NotificationVariant
from prepcoach.models.transcription import AnalysisResult


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests spanning several components")
    config.addinivalue_line("markers", "slow: tests that sleep or run threads")
    config.addinivalue_line("markers", "hardware: tests that need a real microphone")


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # Generate 1024 samples of 16-bit audio (sine wave)
    sample_rate = 16000
    duration = 1024 / sample_rate  # ~0.064 seconds
    freq = 440  # A4 note

    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * freq * t) * 0.5

    # Convert to 16-bit integers
    audio_data = (wave_data * 32767).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def audio_test_data():
    """Generate various audio test data patterns."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000):
        """Generate audio data for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz

        Returns:
            bytes: Audio data as bytes
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            wave_data = np.sin(2 * np.pi * 440 * t) * 0.5
        elif pattern == "noise":
            wave_data = np.random.uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        audio_data = (wave_data * 32767).astype(np.int16)
        return audio_data.tobytes()

    return generate_audio


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def session_config(tmp_path):
    """Configuration file with logs kept inside the test directory."""
    config_file = tmp_path / "prepcoach.yaml"
    config_file.write_text(
        "audio:\n"
        "  sample_rate: 16000\n"
        "  chunk_interval_ms: 200\n"
        "processing:\n"
        "  silence_threshold: 10\n"
        "  silence_duration_ms: 800\n"
        "logging:\n"
        "  file_path: logs/prepcoach.log\n"
    )
    return PrepCoachConfig(str(config_file))


def make_chunk(sequence_number: int, size: int = 1024) -> AudioChunk:
    return AudioChunk(data=b'\x01' * size, timestamp=float(sequence_number),
                      sequence_number=sequence_number)


class FakeClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


class FakeCapture:
    """Stands in for AudioCapture; frames are pushed by the test via emit()."""

    def __init__(self, callback, on_error=None, error=None):
        self.callback = callback
        self.on_error = on_error
        self.error = error
        self.is_recording = False
        self.start_calls = 0
        self.stop_calls = 0

    def start_recording(self):
        self.start_calls += 1
        if self.error is not None:
            raise self.error
        self.is_recording = True

    def stop_recording(self):
        self.stop_calls += 1
        self.is_recording = False

    def emit(self, pcm: bytes):
        self.callback(pcm)

    def fail(self, error):
        """Behave like the capture thread losing the device."""
        self.is_recording = False
        self.on_error(error)

    def get_recording_stats(self):
        return AudioStats(is_recording=self.is_recording, duration_seconds=1.5,
                          sample_rate=16000, frames_per_buffer=1024, total_frames=0)


class StubEncoder:
    """Encoder that passes PCM through unchanged."""

    def __init__(self, mime_type="audio/ogg;codecs=opus", error=None):
        self.supported = mime_type
        self.error = error
        self.mime_type = None

    def negotiate(self):
        if self.error is not None:
            raise self.error
        self.mime_type = self.supported
        return self.mime_type

    def encode(self, pcm: bytes) -> bytes:
        return pcm


class FakeAnalysisClient:
    """Scripted analysis endpoint.

    ``transcriptions`` are returned by successive transcribe calls and
    ``coaching`` pieces are streamed cumulatively by stream_coaching. Setting
    ``gate`` to an asyncio.Event holds transcribe until it is set.
    """

    def __init__(self, transcriptions=None, coaching=None, error=None):
        self.transcriptions = list(transcriptions or [])
        self.coaching = list(coaching or [])
        self.error = error
        self.gate = None
        self.transcribe_calls = []
        self.coaching_calls = []

    async def transcribe(self, blob, last_transcription):
        self.transcribe_calls.append((blob, last_transcription))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        text = self.transcriptions.pop(0) if self.transcriptions else ""
        return AnalysisResult(transcription=text)

    async def stream_coaching(self, question, token=None):
        self.coaching_calls.append(question)
        accumulated = ""
        for piece in self.coaching:
            if token is not None and token.cancelled:
                return
            accumulated += piece
            yield accumulated
            await asyncio.sleep(0)


class RecordingPublisher:
    """Collects everything a session publishes."""

    def __init__(self):
        self.states = []
        self.levels = []
        self.notifications = []

    def publish_state(self, state):
        self.states.append(replace(state))

    def publish_level(self, level):
        self.levels.append(level)

    def notify(self, title, description, variant=NotificationVariant.DEFAULT):
        self.notifications.append((title, description, variant))

    def notify_error(self, title, description):
        self.notify(title, description, NotificationVariant.DESTRUCTIVE)


class ScriptedLevelMeter:
    """Level meter whose reading is set directly by the test."""

    def __init__(self, level: int = 0):
        self.level = level

    def read(self) -> int:
        return self.level


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_client():
    return FakeAnalysisClient()


@pytest.fixture
def recording_publisher():
    return RecordingPublisher()


@pytest.fixture
def make_session(session_config, fake_clock, recording_publisher):
    """Build a CaptureSession wired to fakes; the created capture is kept on ``session.fake_capture``."""
    from prepcoach.services.capture_session import CaptureSession

    def factory(client, capture_error=None, encoder=None):
        captures = []

        def capture_factory(callback, on_error=None):
            capture = FakeCapture(callback, on_error=on_error, error=capture_error)
            captures.append(capture)
            return capture

        session = CaptureSession(
            session_config,
            client,
            publisher=recording_publisher,
            capture_factory=capture_factory,
            encoder=encoder or StubEncoder(),
            clock=fake_clock,
        )
        session.captures = captures
        return session

    return factory
