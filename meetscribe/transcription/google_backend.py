"""Google Speech-to-Text transcription backend."""

import time
import wave
import logging
from typing import Optional, Dict, Any

from .base import AbstractTranscriptionBackend
from ..errors import TranscriptionError, TranscriptionErrorKind
from ..models.audio import AudioArtifact

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

# Synchronous recognize accepts at most 10 MB of inline audio.
MAX_INLINE_AUDIO_BYTES = 10 * 1024 * 1024


class GoogleSpeechBackend(AbstractTranscriptionBackend):
    """Google Speech-to-Text API backend for transcription."""

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 language: str = "en-US",
                 model: str = "latest_long",
                 use_enhanced: bool = True,
                 enable_automatic_punctuation: bool = True,
                 request_timeout: float = 30.0):
        """Initialize Google Speech backend.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            language: Language code (e.g., 'en-US', 'es-ES')
            model: Recognition model name
            use_enhanced: Whether to use enhanced model (costs more but better quality)
            enable_automatic_punctuation: Enable automatic punctuation
            request_timeout: Deadline in seconds for one recognize call
        """
        super().__init__(language)
        self.credentials_path = credentials_path
        if not self.credentials_path:
            raise ValueError("Google credentials path is required - cannot initialize without credentials")
        self.model = model
        self.use_enhanced = use_enhanced
        self.enable_automatic_punctuation = enable_automatic_punctuation
        self.request_timeout = request_timeout
        self.client = None
        self.project_id = None
        self.service_name = "Google Speech-to-Text"
        self.requests_made = 0
        self.failures = 0

    def initialize(self) -> bool:
        """Initialize Google Speech client and verify credentials."""
        logger.info(f"Loading Google credentials from: {self.credentials_path}")
        credentials = service_account.Credentials.from_service_account_file(self.credentials_path)

        # Initialize client with direct credentials - CRASH if credentials are invalid
        self.client = speech.SpeechClient(credentials=credentials)

        self.project_id = credentials.project_id
        logger.info(f"Using Google Cloud project: {self.project_id}")

        logger.info("Google Speech-to-Text backend initialized successfully")
        return True

    def _recognition_config(self, sample_rate: int, channels: int) -> speech.RecognitionConfig:
        return speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=sample_rate,
            audio_channel_count=channels,
            language_code=self.language,
            use_enhanced=self.use_enhanced,
            enable_automatic_punctuation=self.enable_automatic_punctuation,
            model=self.model,
        )

    def transcribe(self, artifact: AudioArtifact) -> str:
        """Transcribe a segment file using Google Speech-to-Text."""
        if self.client is None:
            raise RuntimeError("GoogleSpeechBackend.initialize() has not been called")

        try:
            with wave.open(artifact.path, 'rb') as wf:
                sample_rate = wf.getframerate()
                channels = wf.getnchannels()
                audio_bytes = wf.readframes(wf.getnframes())
        except (wave.Error, EOFError, OSError) as e:
            raise TranscriptionError(TranscriptionErrorKind.MALFORMED_INPUT,
                                     f"Cannot read {artifact.name}: {e}") from e

        if len(audio_bytes) > MAX_INLINE_AUDIO_BYTES:
            raise TranscriptionError(
                TranscriptionErrorKind.PAYLOAD_TOO_LARGE,
                f"{artifact.name} is {len(audio_bytes) / 1024 / 1024:.1f} MB, "
                f"limit is {MAX_INLINE_AUDIO_BYTES // 1024 // 1024} MB",
            )

        logger.debug(f"Segment {artifact.name}; Audio size: {len(audio_bytes)} bytes; "
                     f"{sample_rate}Hz x{channels}; Language: {self.language}; Model: {self.model}")

        start_time = time.time()
        audio = speech.RecognitionAudio(content=audio_bytes)
        self.requests_made += 1
        try:
            response = self.client.recognize(
                config=self._recognition_config(sample_rate, channels),
                audio=audio,
                timeout=self.request_timeout,
            )
        except gax_exceptions.GoogleAPICallError as e:
            self.failures += 1
            kind = classify_api_error(e)
            logger.error(f"Google STT {kind.value} error for {artifact.name}: {e}")
            raise TranscriptionError(kind, f"Google Speech API error ({artifact.name}): {e}") from e
        processing_time = time.time() - start_time

        if not response.results:
            logger.debug(f"--- NO SPEECH DETECTED in {artifact.name} ---")
            return ""

        parts = []
        for result in response.results:
            if result.alternatives:
                parts.append(result.alternatives[0].transcript.strip())
        transcript = " ".join(part for part in parts if part)

        logger.debug(f"✅ TRANSCRIPTION SUCCESS: {len(transcript)} chars from {len(response.results)} results "
                     f"(processing_time: {processing_time:.3f}s)")
        return transcript

    def cleanup(self) -> None:
        """Clean up Google Speech client resources."""
        self.client = None

    def get_stats(self) -> Dict[str, Any]:
        """Get Google-specific statistics."""
        return {
            "service": self.service_name,
            "language": self.language,
            "model": self.model,
            "requests_made": self.requests_made,
            "failures": self.failures,
        }


def classify_api_error(error: gax_exceptions.GoogleAPICallError) -> TranscriptionErrorKind:
    """Map a google-api-core exception onto a reportable error kind."""
    if isinstance(error, (gax_exceptions.Unauthenticated, gax_exceptions.PermissionDenied)):
        return TranscriptionErrorKind.UNAUTHORIZED
    if isinstance(error, (gax_exceptions.ResourceExhausted, gax_exceptions.TooManyRequests)):
        return TranscriptionErrorKind.RATE_LIMITED
    if isinstance(error, gax_exceptions.InvalidArgument):
        message = str(error).lower()
        if "too long" in message or "too large" in message or "exceeds" in message:
            return TranscriptionErrorKind.PAYLOAD_TOO_LARGE
        return TranscriptionErrorKind.MALFORMED_INPUT
    return TranscriptionErrorKind.SERVICE_UNAVAILABLE
