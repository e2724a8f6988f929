"""Data models for the meetscribe application."""

from .session import LifecycleState, SessionStatus, TranscriptSegment, Session
from .audio import AudioArtifact, AudioStats
from .presence import PresenceSignal
from .events import SegmentOutcome, SegmentEvent, LifecycleEvent
from .report import SessionReport

__all__ = [
    "LifecycleState",
    "SessionStatus",
    "TranscriptSegment",
    "Session",
    "AudioArtifact",
    "AudioStats",
    "PresenceSignal",
    "SegmentOutcome",
    "SegmentEvent",
    "LifecycleEvent",
    "SessionReport",
]
