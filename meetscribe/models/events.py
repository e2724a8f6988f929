"""Event models for the pub/sub bus."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Any, Dict

from .session import LifecycleState


class SegmentOutcome(Enum):
    """How a single pipeline iteration ended."""
    RECORDED = "recorded"
    NO_SPEECH = "no_speech"
    REJECTED = "rejected"
    CAPTURE_FAILED = "capture_failed"
    TRANSCRIPTION_FAILED = "transcription_failed"
    PERSIST_FAILED = "persist_failed"
    ABANDONED = "abandoned"
    FAILED = "failed"  # Unexpected error inside the iteration


@dataclass
class SegmentEvent:
    """Result of one capture/transcribe/persist cycle."""
    segment_index: int  # 1-based pipeline iteration, counts every attempt
    outcome: SegmentOutcome
    text: str = ""
    sequence_number: Optional[int] = None  # Set only when a transcript was recorded
    artifact_name: Optional[str] = None
    audio_url: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class LifecycleEvent:
    """Controller state transition."""
    state: LifecycleState
    previous_state: Optional[LifecycleState] = None
    session_id: Optional[str] = None
    reason: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
