"""Final report produced by controller teardown."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .session import LifecycleState, TranscriptSegment


@dataclass
class SessionReport:
    """Summary of one controller run."""
    target: str
    final_state: LifecycleState
    session_id: Optional[str] = None
    stop_reason: Optional[str] = None
    segments: List[TranscriptSegment] = field(default_factory=list)
    segments_attempted: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def total_transcript_count(self) -> int:
        return len(self.segments)

    @property
    def duration_seconds(self) -> float:
        if not self.started_at or not self.ended_at:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    def full_text(self) -> str:
        return " ".join(segment.text.strip() for segment in self.segments)
