"""Audio capture and validation module."""

from .capture import AudioCapture, CaptureHandle
from .validation import validate_artifact, MIN_SEGMENT_BYTES

__all__ = [
    'AudioCapture',
    'CaptureHandle',
    'validate_artifact',
    'MIN_SEGMENT_BYTES',
]
