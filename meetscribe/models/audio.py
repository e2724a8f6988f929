"""Audio-related data models."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional


@dataclass
class AudioArtifact:
    """A transient segment file produced by one capture window."""
    path: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    size_bytes: int = 0
    frames: int = 0
    sample_rate: int = 16000
    channels: int = 1
    peak_level: float = 0.0
    cancelled: bool = False  # True if the window was cut short by cancel()

    @property
    def name(self) -> str:
        return Path(self.path).name

    @property
    def duration_seconds(self) -> float:
        if not self.sample_rate:
            return 0.0
        return self.frames / float(self.sample_rate)

    def exists(self) -> bool:
        return Path(self.path).exists()


@dataclass
class AudioStats:
    """Capture statistics for one segment."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int
    peak_level: float = 0.0
