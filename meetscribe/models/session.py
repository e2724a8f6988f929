"""Session-related data models."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


class LifecycleState(Enum):
    """States of the meeting lifecycle controller."""
    IDLE = "idle"
    JOINING = "joining"
    ACTIVE = "active"
    STOPPING = "stopping"
    ENDED = "ended"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (LifecycleState.ENDED, LifecycleState.FAILED)


class SessionStatus(Enum):
    """Status of a session record in the transcript store."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TranscriptSegment:
    """One transcribed capture window. Immutable once created."""
    text: str
    timestamp: datetime
    sequence_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "segmentNumber": self.sequence_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptSegment":
        return cls(
            text=data["text"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            sequence_number=int(data["segmentNumber"]),
        )


@dataclass
class Session:
    """One tracked attempt at attending and transcribing a meeting.

    Owned by the lifecycle controller. Besides the transcript it tracks the
    time of the last observed activity and the grace window: the moment
    inactivity was first noticed. A session whose grace window has been open
    longer than ``grace_period`` is considered over.
    """
    session_id: str
    target: str
    activity_timeout: timedelta
    grace_period: timedelta
    created_at: datetime = field(default_factory=datetime.now)
    last_activity_at: Optional[datetime] = None
    state: LifecycleState = LifecycleState.ACTIVE
    segments: List[TranscriptSegment] = field(default_factory=list)
    grace_started_at: Optional[datetime] = None

    def __post_init__(self):
        if self.last_activity_at is None:
            self.last_activity_at = self.created_at

    @property
    def transcript_count(self) -> int:
        return len(self.segments)

    def add_segment(self, segment: TranscriptSegment) -> None:
        """Append a segment, keeping sequence numbers gapless.

        Args:
            segment: Segment returned by the transcript store

        Raises:
            ValueError: If the sequence number is not the next one
        """
        expected = len(self.segments) + 1
        if segment.sequence_number != expected:
            raise ValueError(
                f"Segment #{segment.sequence_number} out of order, expected #{expected}"
            )
        self.segments.append(segment)
        self.touch(segment.timestamp)

    def touch(self, now: Optional[datetime] = None) -> None:
        """Record activity and close any open grace window."""
        self.last_activity_at = now or datetime.now()
        self.grace_started_at = None

    def is_recently_active(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return now - self.last_activity_at <= self.activity_timeout

    def check_activity(self, now: Optional[datetime] = None) -> bool:
        """Decide whether the session should stay open.

        The first inactive check opens the grace window and keeps the session
        open. Later inactive checks keep it open until the window is older
        than ``grace_period``. Any recent activity clears the window.

        Returns:
            False once the grace window has elapsed, True otherwise
        """
        now = now or datetime.now()
        if self.is_recently_active(now):
            self.grace_started_at = None
            return True

        if self.grace_started_at is None:
            self.grace_started_at = now
            return True

        return now - self.grace_started_at < self.grace_period

    def grace_remaining(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        if self.grace_started_at is None:
            return None
        now = now or datetime.now()
        return max(self.grace_period - (now - self.grace_started_at), timedelta(0))
