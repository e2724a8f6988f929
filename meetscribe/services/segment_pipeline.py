"""Sequential capture, transcribe and persist loop."""

import logging
import threading
from collections import Counter
from pathlib import Path
from typing import Callable, Optional

from ..audio.capture import AudioCapture, CaptureHandle
from ..audio.validation import validate_artifact, MIN_SEGMENT_BYTES
from ..errors import (
    CaptureError,
    PersistenceError,
    SessionClosedError,
    TranscriptionError,
    UploadError,
    ValidationFailure,
)
from ..models.audio import AudioArtifact
from ..models.events import SegmentEvent, SegmentOutcome
from ..models.session import TranscriptSegment
from ..storage.base import AbstractArtifactStore
from ..transcription.base import AbstractTranscriptionBackend
from .events import EventPublisher

logger = logging.getLogger(__name__)


class SegmentPipeline:
    """Turns the meeting audio into transcript segments, one window at a time.

    Each iteration records one capture window, validates the file, sends it
    to the transcriber and hands non-empty text to ``append_segment``. The
    segment audio is uploaded only after the text has been persisted, and the
    local file is removed at the end of every iteration whatever happened.
    Only one capture is ever in flight. An error inside an iteration, expected
    or not, ends that iteration only and the loop moves on to the next window.
    """

    def __init__(self,
                 capture: AudioCapture,
                 transcriber: AbstractTranscriptionBackend,
                 artifact_store: AbstractArtifactStore,
                 append_segment: Callable[[str], TranscriptSegment],
                 min_segment_bytes: int = MIN_SEGMENT_BYTES,
                 retry_backoff: float = 5.0,
                 publisher: Optional[EventPublisher] = None):
        self.capture = capture
        self.transcriber = transcriber
        self.artifact_store = artifact_store
        self.append_segment = append_segment
        self.min_segment_bytes = min_segment_bytes
        self.retry_backoff = retry_backoff
        self.publisher = publisher

        self.segments_attempted = 0
        self.outcomes: Counter = Counter()

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._current: Optional[CaptureHandle] = None

    def run(self, is_active: Callable[[], bool]) -> None:
        """Run iterations until ``is_active`` turns false."""
        logger.info("🎙️  Segment pipeline started")
        while is_active() and not self._stop_event.is_set():
            self.run_once(is_active)
        logger.info(f"Segment pipeline stopped after {self.segments_attempted} segments: "
                    f"{dict((k.value, v) for k, v in self.outcomes.items())}")

    def run_once(self, is_active: Callable[[], bool]) -> SegmentOutcome:
        """Run a single iteration and return how it ended."""
        self.segments_attempted += 1
        index = self.segments_attempted
        logger.info(f"🔄 Segment {index}: recording...")

        holder = {}
        try:
            event = self._process(index, is_active, holder)
        except Exception as e:
            logger.exception(f"Segment {index}: unexpected error: {e}")
            event = SegmentEvent(index, SegmentOutcome.FAILED, error=f"{type(e).__name__}: {e}")
            self._backoff()
        finally:
            self._discard(holder.get("path"))

        self.outcomes[event.outcome] += 1
        logger.info(f"Segment {index} finished: {event.outcome.value}")
        if self.publisher:
            self.publisher.publish_segment(event)
        return event.outcome

    def cancel_capture(self) -> None:
        """Finalize the in-flight capture early and interrupt backoff waits."""
        with self._lock:
            self._stop_event.set()
            handle = self._current
        if handle is not None:
            handle.cancel()

    def _register(self, handle: Optional[CaptureHandle]) -> None:
        with self._lock:
            self._current = handle
            cancelled = self._stop_event.is_set()
        if handle is not None and cancelled:
            handle.cancel()

    def _process(self, index: int, is_active: Callable[[], bool], holder: dict) -> SegmentEvent:
        try:
            handle = self.capture.begin()
            holder["path"] = handle.output_path
            self._register(handle)
            try:
                artifact = handle.end()
            finally:
                self._register(None)
        except CaptureError as e:
            logger.error(f"Segment {index}: capture failed: {e}")
            self._backoff()
            return SegmentEvent(index, SegmentOutcome.CAPTURE_FAILED, error=str(e))

        holder["path"] = artifact.path
        if not is_active():
            logger.info(f"Segment {index}: stop requested during capture, discarding {artifact.name}")
            return SegmentEvent(index, SegmentOutcome.ABANDONED, artifact_name=artifact.name)

        try:
            validate_artifact(artifact, self.min_segment_bytes)
        except ValidationFailure as e:
            logger.warning(f"Segment {index}: discarded, {e.reason}")
            return SegmentEvent(index, SegmentOutcome.REJECTED, artifact_name=artifact.name,
                                error=e.reason)

        logger.info(f"Segment {index}: transcribing {artifact.name}...")
        try:
            text = self.transcriber.transcribe(artifact) or ""
        except TranscriptionError as e:
            logger.error(f"Segment {index}: transcription failed ({e.kind.value}): {e}")
            return SegmentEvent(index, SegmentOutcome.TRANSCRIPTION_FAILED,
                                artifact_name=artifact.name, error=str(e))

        if not is_active():
            logger.info(f"Segment {index}: stop requested during transcription, discarding")
            return SegmentEvent(index, SegmentOutcome.ABANDONED, artifact_name=artifact.name)

        text = text.strip()
        if not text:
            logger.info(f"Segment {index}: no speech detected")
            return SegmentEvent(index, SegmentOutcome.NO_SPEECH, artifact_name=artifact.name)

        try:
            segment = self.append_segment(text)
        except SessionClosedError as e:
            logger.info(f"Segment {index}: session closed before append: {e}")
            return SegmentEvent(index, SegmentOutcome.ABANDONED, text=text,
                                artifact_name=artifact.name)
        except PersistenceError as e:
            logger.error(f"Segment {index}: could not save transcript: {e}")
            return SegmentEvent(index, SegmentOutcome.PERSIST_FAILED, text=text,
                                artifact_name=artifact.name, error=str(e))

        audio_url = self._upload(artifact)
        logger.info(f"📝 Segment {index} saved as #{segment.sequence_number}: {text[:60]}")
        return SegmentEvent(
            index,
            SegmentOutcome.RECORDED,
            text=text,
            sequence_number=segment.sequence_number,
            artifact_name=artifact.name,
            audio_url=audio_url,
        )

    def _backoff(self) -> None:
        if self.retry_backoff > 0:
            logger.info(f"Next segment in {self.retry_backoff:.1f}s...")
            self._stop_event.wait(self.retry_backoff)

    def _upload(self, artifact: AudioArtifact) -> Optional[str]:
        try:
            return self.artifact_store.upload(artifact)
        except UploadError as e:
            logger.error(f"Audio upload failed, transcript kept: {e}")
        except Exception as e:
            # The transcript is already persisted, so this stays a recorded segment
            logger.exception(f"Unexpected upload error, transcript kept: {e}")
        return None

    def _discard(self, path) -> None:
        if not path:
            return
        try:
            Path(path).unlink(missing_ok=True)
            logger.debug(f"Deleted local segment file {Path(path).name}")
        except OSError as e:
            logger.warning(f"Could not delete {path}: {e}")
