"""Persistence backends for transcripts and segment audio."""

from .base import AbstractTranscriptStore, AbstractArtifactStore
from .file_manager import LocalTranscriptStore, LocalArtifactStore
from .supabase import SupabaseTranscriptStore, SupabaseArtifactStore

__all__ = [
    "AbstractTranscriptStore",
    "AbstractArtifactStore",
    "LocalTranscriptStore",
    "LocalArtifactStore",
    "SupabaseTranscriptStore",
    "SupabaseArtifactStore",
]
