"""Pytest configuration and fixtures for meetscribe tests."""

import pytest
import tempfile
import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from unittest.mock import Mock, patch
import numpy as np
import wave

from meetscribe.browser.base import AbstractMeetingPage, BrowserSession, MeetingHandle
from meetscribe.config import ControllerSettings
from meetscribe.errors import CaptureError
from meetscribe.models.audio import AudioArtifact
from meetscribe.models.presence import PresenceSignal
from meetscribe.storage.base import AbstractArtifactStore
from meetscribe.transcription.base import AbstractTranscriptionBackend


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")
    config.addinivalue_line("markers", "integration: tests wiring several components together")


def write_wav(path, frames: int = 16000, sample_rate: int = 16000, silent: bool = False) -> str:
    """Write a mono 16-bit WAV file with ``frames`` samples."""
    if silent:
        audio_data = np.zeros(frames, dtype=np.int16)
    else:
        t = np.linspace(0, frames / sample_rate, frames, False)
        audio_data = (np.sin(2 * np.pi * 440 * t) * 16000).astype(np.int16)
    with wave.open(str(path), 'wb') as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(audio_data.tobytes())
    return str(path)


def make_artifact(path, frames: Optional[int] = 16000) -> AudioArtifact:
    """Build an artifact for ``path``, writing a WAV first unless frames is None."""
    if frames is not None:
        write_wav(path, frames)
    size = Path(path).stat().st_size if Path(path).exists() else 0
    return AudioArtifact(path=str(path), started_at=datetime.now(), ended_at=datetime.now(),
                         size_bytes=size, frames=frames or 0)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # Generate 1024 samples of 16-bit audio (sine wave)
    sample_rate = 16000
    duration = 1024 / sample_rate  # ~0.064 seconds
    freq = 440  # A4 note

    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * freq * t)

    # Convert to 16-bit integers
    audio_data = (wave_data * 32767).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.side_effect = lambda frames, exception_on_overflow=False: b'\x00\x10' * frames
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_sample_size.return_value = 2
        mock_pyaudio_instance.get_device_count.return_value = 2
        mock_pyaudio_instance.get_device_info_by_index.side_effect = lambda i: [
            {"name": "Built-in Output", "maxInputChannels": 0, "defaultSampleRate": 48000.0},
            {"name": "BlackHole 2ch", "maxInputChannels": 2, "defaultSampleRate": 48000.0},
        ][i]

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def sample_audio_file(temp_data_dir, sample_audio_chunk):
    """Create a sample WAV file for testing."""
    file_path = Path(temp_data_dir) / "test_audio.wav"

    # Create a simple WAV file with test data
    with wave.open(str(file_path), 'wb') as wf:
        wf.setnchannels(1)  # Mono
        wf.setsampwidth(2)  # 16-bit
        wf.setframerate(16000)  # 16kHz

        # Write multiple chunks to create a longer file
        for _ in range(100):  # ~6.4 seconds of audio
            wf.writeframes(sample_audio_chunk)

    return str(file_path)


class FakePage(AbstractMeetingPage):
    """Scriptable meeting page.

    ``in_meeting`` lists the result of each ``is_in_meeting()`` call; once
    exhausted the last value repeats.
    """

    def __init__(self, target: str = "https://meet.example.com/abc", in_meeting=None,
                 join_button: bool = True):
        self.url = target
        self.in_meeting = list(in_meeting if in_meeting is not None else [True])
        self.join_button = join_button
        self.presence = PresenceSignal(activity_detected=True, participant_count=3)
        self.calls: List[str] = []
        self.close_count = 0

    def current_url(self) -> str:
        return self.url

    def navigate(self, target: str) -> None:
        self.calls.append("navigate")
        self.url = target

    def click_join(self) -> bool:
        self.calls.append("click_join")
        return self.join_button

    def keyboard_join(self) -> None:
        self.calls.append("keyboard_join")

    def is_in_meeting(self) -> bool:
        self.calls.append("is_in_meeting")
        if len(self.in_meeting) > 1:
            return self.in_meeting.pop(0)
        return self.in_meeting[0]

    def check_presence(self) -> PresenceSignal:
        return self.presence

    def close(self) -> None:
        self.close_count += 1


class FakeBrowserSession(BrowserSession):
    """Returns a handle on ``page`` or raises the configured error.

    When ``gate`` is given, ``join()`` blocks until it is set.
    """

    def __init__(self, page: Optional[FakePage] = None, error: Optional[Exception] = None,
                 gate: Optional[threading.Event] = None):
        self.page = page or FakePage()
        self.error = error
        self.gate = gate
        self.joining = threading.Event()
        self.join_calls = 0
        self.handle: Optional[MeetingHandle] = None

    def join(self, target: str, cancel_event: Optional[threading.Event] = None) -> MeetingHandle:
        self.join_calls += 1
        self.joining.set()
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.error is not None:
            raise self.error
        self.handle = MeetingHandle(self.page, target)
        return self.handle


class FakeCaptureHandle:
    """Capture window that writes a WAV file after ``window`` seconds or on cancel."""

    def __init__(self, output_path: Path, frames: int, window: float):
        self.output_path = output_path
        self.frames = frames
        self.window = window
        self.stop_event = threading.Event()

    def cancel(self) -> None:
        self.stop_event.set()

    def end(self, timeout: Optional[float] = None) -> AudioArtifact:
        self.stop_event.wait(self.window)
        return make_artifact(self.output_path, self.frames)


class FakeCapture:
    """Stand-in for AudioCapture.

    ``script`` holds one entry per ``begin()``: a frame count to write, or
    ``"error"`` to raise CaptureError. After the script runs out every window
    produces ``default_frames`` frames.
    """

    def __init__(self, output_dir, script=None, default_frames: int = 16000, window: float = 0.01):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.script = list(script or [])
        self.default_frames = default_frames
        self.window = window
        self.handles: List[FakeCaptureHandle] = []
        self.window_seconds = window

    def begin(self) -> FakeCaptureHandle:
        step = self.script.pop(0) if self.script else self.default_frames
        if step == "error":
            raise CaptureError("device unavailable")
        path = self.output_dir / f"recording-{len(self.handles) + 1}.wav"
        handle = FakeCaptureHandle(path, step, self.window)
        self.handles.append(handle)
        return handle


class FakeTranscriber(AbstractTranscriptionBackend):
    """Returns scripted transcripts; exception instances in the script are raised."""

    def __init__(self, script=None, default: str = ""):
        super().__init__()
        self.script = list(script or [])
        self.default = default
        self.calls: List[str] = []
        self.hook = None  # Called with the artifact before answering

    def transcribe(self, artifact: AudioArtifact) -> str:
        self.calls.append(artifact.path)
        if self.hook:
            self.hook(artifact)
        result = self.script.pop(0) if self.script else self.default
        if isinstance(result, Exception):
            raise result
        return result

    def initialize(self) -> bool:
        return True

    def cleanup(self) -> None:
        pass


class RecordingArtifactStore(AbstractArtifactStore):
    """Keeps the names of uploaded artifacts and checks the file still exists."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.uploaded: List[str] = []
        self.events: Optional[List[str]] = None

    def upload(self, artifact: AudioArtifact) -> str:
        assert Path(artifact.path).exists(), "artifact deleted before upload"
        if self.events is not None:
            self.events.append("upload")
        if self.error is not None:
            raise self.error
        self.uploaded.append(artifact.name)
        return f"memory://{artifact.name}"


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def fast_settings():
    """Controller settings with short intervals so tests finish quickly."""
    return ControllerSettings(
        meeting_target="https://meet.example.com/abc",
        capture_window_ms=10,
        capture_retry_backoff_ms=10,
        activity_timeout_ms=60_000,
        activity_interval_ms=60_000,
        participant_interval_ms=60_000,
        join_settle_ms=0,
    )
