"""Audio capture module recording fixed-length segment files."""

import pyaudio
import wave
import logging
from pathlib import Path
from threading import Thread, Event, Lock
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
import numpy as np

from ..errors import CaptureError
from ..models.audio import AudioArtifact, AudioStats


logger = logging.getLogger(__name__)


class CaptureHandle:
    """One in-flight capture window writing a single WAV file.

    Recording runs on a background thread until the window is full or
    ``cancel()`` is called. ``end()`` blocks until then and returns the
    finished artifact.
    """

    def __init__(self, capture: "AudioCapture", output_path: Path):
        self.capture = capture
        self.output_path = output_path
        self.started_at = datetime.now()
        self.ended_at: Optional[datetime] = None

        self.stop_event = Event()
        self.recording_thread: Optional[Thread] = None
        self.total_chunks = 0
        self.frames_written = 0
        self.peak_level = 0.0
        self._error: Optional[BaseException] = None

    @property
    def is_recording(self) -> bool:
        return self.recording_thread is not None and self.recording_thread.is_alive()

    def _start(self) -> None:
        self.recording_thread = Thread(target=self._record_window, daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self.recording_thread.start()

    def cancel(self) -> None:
        """Ask the recording thread to finalize the file early."""
        if not self.stop_event.is_set():
            logger.info(f"Cancelling capture of {self.output_path.name}")
        self.stop_event.set()

    def end(self, timeout: Optional[float] = None) -> AudioArtifact:
        """Wait for the capture window to finish and return the segment file.

        Args:
            timeout: Extra seconds to wait beyond the capture window

        Returns:
            AudioArtifact describing the written file

        Raises:
            CaptureError: If recording failed or did not finish in time
        """
        if timeout is None:
            timeout = self.capture.window_seconds + 10.0

        if self.recording_thread:
            self.recording_thread.join(timeout=timeout)
            if self.recording_thread.is_alive():
                self.cancel()
                self.recording_thread.join(timeout=2.0)
                raise CaptureError(f"Recording thread did not finish for {self.output_path.name}")

        if self._error is not None:
            raise CaptureError(f"Audio capture failed: {self._error}") from self._error

        size = self.output_path.stat().st_size if self.output_path.exists() else 0
        artifact = AudioArtifact(
            path=str(self.output_path),
            started_at=self.started_at,
            ended_at=self.ended_at or datetime.now(),
            size_bytes=size,
            frames=self.frames_written,
            sample_rate=self.capture.sample_rate,
            channels=self.capture.channels,
            peak_level=self.peak_level,
            cancelled=self.stop_event.is_set(),
        )
        logger.info(
            f"Finished segment {artifact.name}: {artifact.duration_seconds:.1f}s, "
            f"{size / 1024:.2f} KB, peak {self.peak_level:.3f}"
        )
        return artifact

    def _record_window(self) -> None:
        """Internal method: record until the window is full or cancelled."""
        pyaudio_instance = None
        stream = None
        try:
            pyaudio_instance = pyaudio.PyAudio()
            stream = self.capture._open_stream(pyaudio_instance)
            frames_needed = int(self.capture.window_seconds * self.capture.sample_rate)

            with wave.open(str(self.output_path), 'wb') as wf:
                wf.setnchannels(self.capture.channels)
                wf.setsampwidth(pyaudio_instance.get_sample_size(self.capture.format))
                wf.setframerate(self.capture.sample_rate)

                while self.frames_written < frames_needed and not self.stop_event.is_set():
                    frames = min(self.capture.chunk_size, frames_needed - self.frames_written)
                    audio_chunk = stream.read(frames, exception_on_overflow=False)
                    wf.writeframes(audio_chunk)
                    self.total_chunks += 1
                    self.frames_written += frames
                    self._update_peak(audio_chunk)
        except Exception as e:
            logger.error(f"Error recording audio to {self.output_path}: {e}")
            self._error = e
        finally:
            self.ended_at = datetime.now()
            if stream:
                stream.stop_stream()
                stream.close()
            if pyaudio_instance:
                pyaudio_instance.terminate()

    def _update_peak(self, audio_chunk: bytes) -> None:
        samples = np.frombuffer(audio_chunk, dtype=np.int16)
        if samples.size:
            level = float(np.abs(samples.astype(np.int32)).max()) / 32768.0
            self.peak_level = max(self.peak_level, level)

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=self.frames_written / float(self.capture.sample_rate),
            sample_rate=self.capture.sample_rate,
            chunk_size=self.capture.chunk_size,
            total_chunks=self.total_chunks,
            peak_level=self.peak_level,
        )


class AudioCapture:
    """Records bounded audio segments from an input device into WAV files."""

    def __init__(
        self,
        output_dir: str = "./data/tmp/audio",
        device: Optional[Union[int, str]] = None,
        window_seconds: float = 60.0,
        sample_rate: int = 16000,
        chunk_size: int = 1024,
        channels: int = 1,
        format: int = pyaudio.paInt16,
    ):
        """Initialize audio capture with specified parameters.

        Args:
            output_dir: Directory for transient segment files
            device: Input device index or a substring of its name (None = default)
            window_seconds: Length of one capture window
            sample_rate: Audio sample rate (16kHz suits speech recognition)
            chunk_size: Size of each read in samples
            channels: Number of audio channels (1 for mono)
            format: Audio format (16-bit signed int)
        """
        self.output_dir = Path(output_dir)
        self.device = device
        self.window_seconds = window_seconds
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.format = format

        self._lock = Lock()
        self.current: Optional[CaptureHandle] = None

        self.output_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"AudioCapture initialized: device={device!r}, window={window_seconds}s, "
                    f"output={self.output_dir}")

    def begin(self) -> CaptureHandle:
        """Start recording a new segment.

        Returns:
            Handle for the running capture window

        Raises:
            CaptureError: If a capture is already running
        """
        with self._lock:
            if self.current is not None and self.current.is_recording:
                raise CaptureError("Recording is already in progress")

            handle = CaptureHandle(self, self._generate_output_path())
            self.current = handle

        logger.info(f"Starting audio recording: {handle.output_path.name}")
        handle._start()
        return handle

    def _generate_output_path(self, timestamp: Optional[datetime] = None) -> Path:
        timestamp = timestamp or datetime.now()
        formatted = timestamp.isoformat().replace(':', '-').replace('.', '-')
        return self.output_dir / f"recording-{formatted}.wav"

    def _open_stream(self, pyaudio_instance: "pyaudio.PyAudio") -> "pyaudio.Stream":
        device_index = self._resolve_device_index(pyaudio_instance)
        stream = pyaudio_instance.open(
            format=self.format,
            channels=self.channels,
            rate=self.sample_rate,
            input=True,
            input_device_index=device_index,
            frames_per_buffer=self.chunk_size,
            stream_callback=None
        )
        logger.debug(f"Audio stream opened: {self.sample_rate}Hz, "
                     f"{self.chunk_size} samples/chunk, device={device_index}")
        return stream

    def _resolve_device_index(self, pyaudio_instance: "pyaudio.PyAudio") -> Optional[int]:
        if self.device is None or self.device == "":
            return None
        if isinstance(self.device, int) or str(self.device).isdigit():
            return int(self.device)

        wanted = str(self.device).lower()
        for info in _input_devices(pyaudio_instance):
            if wanted in info["name"].lower():
                return info["index"]
        raise CaptureError(f"Input device not found: {self.device}")

    def list_input_devices(self) -> List[Dict[str, Any]]:
        """List input-capable devices known to PortAudio."""
        pyaudio_instance = pyaudio.PyAudio()
        try:
            return _input_devices(pyaudio_instance)
        finally:
            pyaudio_instance.terminate()


def _input_devices(pyaudio_instance: "pyaudio.PyAudio") -> List[Dict[str, Any]]:
    devices = []
    for index in range(pyaudio_instance.get_device_count()):
        info = pyaudio_instance.get_device_info_by_index(index)
        if info.get("maxInputChannels", 0) > 0:
            devices.append({
                "index": index,
                "name": info.get("name", f"device {index}"),
                "channels": info.get("maxInputChannels", 0),
                "default_sample_rate": info.get("defaultSampleRate"),
            })
    return devices
