"""Transcription module for meetscribe."""

from .base import AbstractTranscriptionBackend
from .google_backend import GoogleSpeechBackend

__all__ = [
    "AbstractTranscriptionBackend",
    "GoogleSpeechBackend",
]
