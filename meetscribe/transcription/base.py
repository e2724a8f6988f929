"""Abstract base class for transcription backends."""

from abc import ABC, abstractmethod
import logging

from ..models.audio import AudioArtifact

logger = logging.getLogger(__name__)


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends."""

    def __init__(self, language: str = "en-US"):
        """Initialize backend with language preference."""
        self.language = language

    @abstractmethod
    def transcribe(self, artifact: AudioArtifact) -> str:
        """Transcribe one segment file.

        Args:
            artifact: Validated segment file

        Returns:
            Transcript text; an empty string means no speech was detected

        Raises:
            TranscriptionError: On API-level failures
        """
        pass

    @abstractmethod
    def initialize(self) -> bool:
        """Initialize backend resources and verify configuration.

        Returns:
            True if initialization successful, False otherwise
        """
        pass

    @abstractmethod
    def cleanup(self) -> None:
        """Clean up backend resources."""
        pass
