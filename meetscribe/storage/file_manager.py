"""File-backed transcript and audio storage."""

import json
import logging
import random
import shutil
import string
import threading
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, List

from .base import AbstractTranscriptStore, AbstractArtifactStore
from ..errors import PersistenceError, UploadError
from ..models.audio import AudioArtifact
from ..models.session import SessionStatus, TranscriptSegment


logger = logging.getLogger(__name__)


class LocalTranscriptStore(AbstractTranscriptStore):
    """Keeps one JSON document per session under ``<data_dir>/sessions``.

    The document mirrors the ``meeting_transcripts`` row layout used by the
    Supabase store so both backends produce the same shape.
    """

    def __init__(self, data_dir: str = "./data"):
        """Initialize the store with a data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.sessions_dir = self.data_dir / "sessions"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        logger.info(f"LocalTranscriptStore initialized with data_dir: {self.data_dir}")

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(session_id, threading.Lock())

    def _session_file(self, session_id: str) -> Path:
        return self.sessions_dir / session_id / "session.json"

    def create_session(self, target: str) -> str:
        """Create a new session record with timestamp and random suffix.

        Returns:
            Session ID (timestamp-based with random suffix)
        """
        timestamp = datetime.now()
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
        session_id = f"{timestamp.strftime('%Y%m%d_%H%M%S')}_{random_suffix}"

        record = {
            "id": session_id,
            "meet_link": target,
            "date": timestamp.date().isoformat(),
            "time": timestamp.strftime("%H:%M:%S"),
            "transcript": [],
            "status": SessionStatus.ACTIVE.value,
            "segment_count": 0,
            "total_words": 0,
            "last_updated": timestamp.isoformat(),
        }
        self._write(session_id, record)
        logger.info(f"Created session record: {session_id}")
        return session_id

    def append_segment(self, session_id: str, text: str) -> TranscriptSegment:
        with self._lock_for(session_id):
            record = self._read(session_id)
            existing = record.get("transcript") or []

            segment = TranscriptSegment(
                text=text,
                timestamp=datetime.now(),
                sequence_number=len(existing) + 1,
            )
            existing.append(segment.to_dict())

            record["transcript"] = existing
            record["status"] = SessionStatus.ACTIVE.value
            record["segment_count"] = len(existing)
            record["total_words"] = sum(len(item["text"].split()) for item in existing)
            record["last_updated"] = datetime.now().isoformat()
            self._write(session_id, record)

        logger.info(f"Saved segment #{segment.sequence_number} for session {session_id}")
        return segment

    def set_status(self, session_id: str, status: SessionStatus) -> None:
        try:
            with self._lock_for(session_id):
                record = self._read(session_id)
                record["status"] = status.value
                record["last_updated"] = datetime.now().isoformat()
                self._write(session_id, record)
        finally:
            if status in (SessionStatus.COMPLETED, SessionStatus.FAILED):
                # Finalized sessions take no more appends
                with self._locks_guard:
                    self._locks.pop(session_id, None)
        logger.info(f"Session {session_id} marked {status.value}")

    def get_segments(self, session_id: str) -> List[TranscriptSegment]:
        record = self._read(session_id)
        return [TranscriptSegment.from_dict(item) for item in record.get("transcript") or []]

    def load_record(self, session_id: str) -> Dict[str, Any]:
        """Return the raw session document."""
        return self._read(session_id)

    def list_sessions(self) -> List[str]:
        """List all session IDs, oldest first."""
        sessions = [
            path.name for path in self.sessions_dir.iterdir()
            if path.is_dir() and (path / "session.json").exists()
        ]
        sessions.sort()
        logger.debug(f"Found {len(sessions)} sessions")
        return sessions

    def _read(self, session_id: str) -> Dict[str, Any]:
        session_file = self._session_file(session_id)
        try:
            with open(session_file, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError as e:
            raise PersistenceError(f"Unknown session: {session_id}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Error reading session {session_id}: {e}") from e

    def _write(self, session_id: str, record: Dict[str, Any]) -> None:
        session_file = self._session_file(session_id)
        try:
            session_file.parent.mkdir(parents=True, exist_ok=True)
            tmp = session_file.with_suffix(session_file.suffix + ".tmp")
            tmp.write_text(json.dumps(record, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(session_file)
        except OSError as e:
            raise PersistenceError(f"Error writing session {session_id}: {e}") from e


class LocalArtifactStore(AbstractArtifactStore):
    """Copies segment audio into ``<data_dir>/audio`` and returns a file URI."""

    def __init__(self, data_dir: str = "./data"):
        self.audio_dir = Path(data_dir) / "audio"
        self.audio_dir.mkdir(parents=True, exist_ok=True)

    def upload(self, artifact: AudioArtifact) -> str:
        destination = self.audio_dir / artifact.name
        try:
            shutil.copyfile(artifact.path, destination)
        except OSError as e:
            raise UploadError(f"Error archiving {artifact.name}: {e}") from e

        logger.info(f"Audio file archived: {destination} ({artifact.size_bytes} bytes)")
        return destination.resolve().as_uri()
