"""Exception types shared across meetscribe components."""

from enum import Enum
from typing import Optional


class MeetscribeError(Exception):
    """Base class for all meetscribe errors."""


class JoinError(MeetscribeError):
    """Raised when the bot could not get into the meeting."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class CaptureError(MeetscribeError):
    """Audio capture could not start or did not produce a segment file."""


class ValidationFailure(MeetscribeError):
    """A captured segment file is missing, too small or unreadable.

    Not an error state: the segment is discarded and the loop continues.
    """

    def __init__(self, reason: str, path: Optional[str] = None):
        super().__init__(f"{reason}: {path}" if path else reason)
        self.reason = reason
        self.path = path


class TranscriptionErrorKind(Enum):
    """Reportable kinds of speech API failures."""
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    MALFORMED_INPUT = "malformed_input"
    SERVICE_UNAVAILABLE = "service_unavailable"


class TranscriptionError(MeetscribeError):
    """Speech API failure for a single segment."""

    def __init__(self, kind: TranscriptionErrorKind, message: str):
        super().__init__(f"[{kind.value}] {message}")
        self.kind = kind


class PersistenceError(MeetscribeError):
    """Fetch, append or status update against the transcript store failed."""


class SessionClosedError(MeetscribeError):
    """An append arrived after the session stopped accepting segments."""


class UploadError(MeetscribeError):
    """Uploading a segment's audio file to the artifact store failed."""
