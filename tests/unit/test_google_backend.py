"""Unit tests for GoogleSpeechBackend."""

import pytest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock, patch

from google.api_core import exceptions as gax_exceptions

from meetscribe.errors import TranscriptionError, TranscriptionErrorKind
from meetscribe.transcription.google_backend import GoogleSpeechBackend, classify_api_error

from conftest import make_artifact


def response_with(*transcripts):
    results = [SimpleNamespace(alternatives=[SimpleNamespace(transcript=t)]) for t in transcripts]
    return SimpleNamespace(results=results)


@pytest.fixture
def backend():
    backend = GoogleSpeechBackend(credentials_path="/tmp/creds.json", request_timeout=12.0)
    backend.client = Mock()
    return backend


@pytest.mark.unit
class TestGoogleSpeechBackend:
    """Test cases for GoogleSpeechBackend."""

    def test_requires_credentials(self):
        """Test construction without credentials fails."""
        with pytest.raises(ValueError):
            GoogleSpeechBackend(credentials_path=None)

    def test_initialize_uses_service_account(self):
        """Test initialize() builds the client from the service account file."""
        with patch("meetscribe.transcription.google_backend.service_account") as sa, \
                patch("meetscribe.transcription.google_backend.speech.SpeechClient") as client_cls:
            sa.Credentials.from_service_account_file.return_value = Mock(project_id="proj")
            backend = GoogleSpeechBackend(credentials_path="/tmp/creds.json")

            assert backend.initialize() is True

        sa.Credentials.from_service_account_file.assert_called_once_with("/tmp/creds.json")
        client_cls.assert_called_once()
        assert backend.project_id == "proj"

    def test_transcribe_joins_results(self, backend, temp_data_dir):
        """Test the best alternative of each result is joined."""
        backend.client.recognize.return_value = response_with(" hello ", "world")
        artifact = make_artifact(Path(temp_data_dir) / "seg.wav")

        assert backend.transcribe(artifact) == "hello world"
        _, kwargs = backend.client.recognize.call_args
        assert kwargs["timeout"] == 12.0
        assert kwargs["config"].sample_rate_hertz == 16000

    def test_no_results_is_empty(self, backend, temp_data_dir):
        """Test a response without results means no speech."""
        backend.client.recognize.return_value = response_with()
        artifact = make_artifact(Path(temp_data_dir) / "seg.wav")

        assert backend.transcribe(artifact) == ""

    def test_unreadable_file_is_malformed(self, backend, temp_data_dir):
        """Test a file that is not WAV maps to malformed input."""
        path = Path(temp_data_dir) / "bad.wav"
        path.write_bytes(b"garbage" * 500)

        with pytest.raises(TranscriptionError) as exc_info:
            backend.transcribe(make_artifact(path, frames=None))

        assert exc_info.value.kind is TranscriptionErrorKind.MALFORMED_INPUT
        backend.client.recognize.assert_not_called()

    def test_oversized_payload(self, backend, temp_data_dir):
        """Test audio over the inline limit is refused before calling the API."""
        artifact = make_artifact(Path(temp_data_dir) / "seg.wav")
        with patch("meetscribe.transcription.google_backend.MAX_INLINE_AUDIO_BYTES", 100):
            with pytest.raises(TranscriptionError) as exc_info:
                backend.transcribe(artifact)

        assert exc_info.value.kind is TranscriptionErrorKind.PAYLOAD_TOO_LARGE
        backend.client.recognize.assert_not_called()

    def test_api_error_mapped(self, backend, temp_data_dir):
        """Test API failures surface as TranscriptionError with a kind."""
        backend.client.recognize.side_effect = gax_exceptions.Unauthenticated("bad key")
        artifact = make_artifact(Path(temp_data_dir) / "seg.wav")

        with pytest.raises(TranscriptionError) as exc_info:
            backend.transcribe(artifact)

        assert exc_info.value.kind is TranscriptionErrorKind.UNAUTHORIZED
        assert backend.get_stats()["failures"] == 1

    def test_not_initialized(self, temp_data_dir):
        """Test transcribing before initialize() is a programming error."""
        backend = GoogleSpeechBackend(credentials_path="/tmp/creds.json")

        with pytest.raises(RuntimeError):
            backend.transcribe(make_artifact(Path(temp_data_dir) / "seg.wav"))


@pytest.mark.unit
class TestClassifyApiError:
    """Test cases for API error classification."""

    @pytest.mark.parametrize("error, kind", [
        (gax_exceptions.Unauthenticated("x"), TranscriptionErrorKind.UNAUTHORIZED),
        (gax_exceptions.PermissionDenied("x"), TranscriptionErrorKind.UNAUTHORIZED),
        (gax_exceptions.ResourceExhausted("quota"), TranscriptionErrorKind.RATE_LIMITED),
        (gax_exceptions.TooManyRequests("slow down"), TranscriptionErrorKind.RATE_LIMITED),
        (gax_exceptions.InvalidArgument("Inline audio exceeds duration limit"),
         TranscriptionErrorKind.PAYLOAD_TOO_LARGE),
        (gax_exceptions.InvalidArgument("bad encoding"), TranscriptionErrorKind.MALFORMED_INPUT),
        (gax_exceptions.ServiceUnavailable("down"), TranscriptionErrorKind.SERVICE_UNAVAILABLE),
        (gax_exceptions.DeadlineExceeded("slow"), TranscriptionErrorKind.SERVICE_UNAVAILABLE),
    ])
    def test_mapping(self, error, kind):
        """Test each API exception maps to its kind."""
        assert classify_api_error(error) is kind
