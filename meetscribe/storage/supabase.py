"""Supabase (PostgREST + Storage) backends using aiohttp."""

import asyncio
import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp

from .base import AbstractTranscriptStore, AbstractArtifactStore
from ..errors import PersistenceError, UploadError
from ..models.audio import AudioArtifact
from ..models.session import SessionStatus, TranscriptSegment

logger = logging.getLogger(__name__)


class _SupabaseClient:
    """Minimal blocking wrapper around the Supabase REST endpoints."""

    def __init__(self, url: str, api_key: str, request_timeout: float = 30.0):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=request_timeout)

    def headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def request(self, method: str, path: str, **kwargs) -> Any:
        """Run one request to completion on a private event loop."""
        return asyncio.run(self._request(method, path, **kwargs))

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.request(method, f"{self.url}{path}", **kwargs) as response:
                if response.status >= 300:
                    error_text = await response.text()
                    raise aiohttp.ClientResponseError(
                        response.request_info,
                        response.history,
                        status=response.status,
                        message=error_text,
                    )
                if response.content_type == "application/json":
                    return await response.json()
                return await response.text()


class SupabaseTranscriptStore(AbstractTranscriptStore):
    """Stores sessions as rows of the ``meeting_transcripts`` table.

    The transcript column holds the JSON-encoded segment list. Appends are a
    read-modify-write of that column, so they are serialized per store.
    """

    def __init__(self, url: str, api_key: str, table: str = "meeting_transcripts",
                 request_timeout: float = 30.0):
        self.client = _SupabaseClient(url, api_key, request_timeout)
        self.table = table
        self._append_lock = threading.Lock()
        logger.info(f"SupabaseTranscriptStore initialized for table: {table}")

    def _call(self, method: str, path: str, **kwargs) -> Any:
        try:
            return self.client.request(method, path, **kwargs)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PersistenceError(f"Supabase {method} {path} failed: {e}") from e
        except ValueError as e:
            raise PersistenceError(f"Supabase {method} {path} returned invalid JSON: {e}") from e

    def create_session(self, target: str) -> str:
        now = datetime.now()
        rows = self._call(
            "POST",
            f"/rest/v1/{self.table}",
            headers=self.client.headers({"Prefer": "return=representation"}),
            json={
                "meet_link": target,
                "date": now.date().isoformat(),
                "time": now.strftime("%H:%M:%S"),
                "transcript": json.dumps([]),
                "status": SessionStatus.ACTIVE.value,
            },
        )
        if not rows or not isinstance(rows, list) or "id" not in rows[0]:
            raise PersistenceError(f"Supabase did not return the created session row: {rows!r}")
        session_id = str(rows[0]["id"])
        logger.info(f"Created session row: {session_id}")
        return session_id

    def _fetch_transcript(self, session_id: str) -> List[Dict[str, Any]]:
        rows = self._call(
            "GET",
            f"/rest/v1/{self.table}",
            headers=self.client.headers(),
            params={"id": f"eq.{session_id}", "select": "transcript,status"},
        )
        if not rows:
            raise PersistenceError(f"Unknown session: {session_id}")
        return parse_transcript_column(rows[0].get("transcript"))

    def _update(self, session_id: str, values: Dict[str, Any]) -> None:
        rows = self._call(
            "PATCH",
            f"/rest/v1/{self.table}",
            headers=self.client.headers({"Prefer": "return=representation"}),
            params={"id": f"eq.{session_id}"},
            json=values,
        )
        if not rows:
            raise PersistenceError(f"Unknown session: {session_id}")

    def append_segment(self, session_id: str, text: str) -> TranscriptSegment:
        with self._append_lock:
            existing = self._fetch_transcript(session_id)
            segment = TranscriptSegment(
                text=text,
                timestamp=datetime.now(),
                sequence_number=len(existing) + 1,
            )
            existing.append(segment.to_dict())
            self._update(session_id, {
                "transcript": json.dumps(existing),
                "status": SessionStatus.ACTIVE.value,
                "last_updated": datetime.now().isoformat(),
                "segment_count": len(existing),
                "total_words": sum(len(item["text"].split()) for item in existing),
            })
        logger.info(f"Saved segment #{segment.sequence_number} for session {session_id}")
        return segment

    def set_status(self, session_id: str, status: SessionStatus) -> None:
        self._update(session_id, {
            "status": status.value,
            "last_updated": datetime.now().isoformat(),
        })
        logger.info(f"Session {session_id} marked {status.value}")

    def get_segments(self, session_id: str) -> List[TranscriptSegment]:
        return [TranscriptSegment.from_dict(item) for item in self._fetch_transcript(session_id)]


class SupabaseArtifactStore(AbstractArtifactStore):
    """Uploads segment audio into a Supabase Storage bucket."""

    def __init__(self, url: str, api_key: str, bucket: str = "audio", request_timeout: float = 60.0):
        self.client = _SupabaseClient(url, api_key, request_timeout)
        self.bucket = bucket

    def public_url(self, name: str) -> str:
        return f"{self.client.url}/storage/v1/object/public/{self.bucket}/{name}"

    def upload(self, artifact: AudioArtifact) -> str:
        try:
            payload = Path(artifact.path).read_bytes()
            self.client.request(
                "POST",
                f"/storage/v1/object/{self.bucket}/{artifact.name}",
                headers=self.client.headers({
                    "Content-Type": "audio/wav",
                    "Cache-Control": "3600",
                    "x-upsert": "true",
                }),
                data=payload,
            )
        except (OSError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UploadError(f"Error uploading {artifact.name}: {e}") from e

        url = self.public_url(artifact.name)
        logger.info(f"Audio uploaded: {url}")
        return url


def parse_transcript_column(value: Any) -> List[Dict[str, Any]]:
    """Decode the transcript column, stored either as JSON text or as an array."""
    if not value:
        return []
    if isinstance(value, list):
        return value
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"Stored transcript is not valid JSON: {e}") from e
    if not isinstance(decoded, list):
        raise PersistenceError("Stored transcript is not a list of segments")
    return decoded
