"""Abstract interfaces for transcript and artifact persistence."""

from abc import ABC, abstractmethod
from typing import List

from ..models.audio import AudioArtifact
from ..models.session import SessionStatus, TranscriptSegment


class AbstractTranscriptStore(ABC):
    """Durable storage for session records and their transcript segments.

    Implementations raise PersistenceError on any storage failure.
    """

    @abstractmethod
    def create_session(self, target: str) -> str:
        """Create an active session record and return its identifier."""
        pass

    @abstractmethod
    def append_segment(self, session_id: str, text: str) -> TranscriptSegment:
        """Append a transcript segment numbered after the stored ones.

        Returns:
            The stored segment, carrying its sequence number
        """
        pass

    @abstractmethod
    def set_status(self, session_id: str, status: SessionStatus) -> None:
        pass

    @abstractmethod
    def get_segments(self, session_id: str) -> List[TranscriptSegment]:
        pass


class AbstractArtifactStore(ABC):
    """Durable storage for segment audio files."""

    @abstractmethod
    def upload(self, artifact: AudioArtifact) -> str:
        """Upload a segment file and return a URL for it.

        Raises:
            UploadError: If the upload failed
        """
        pass
