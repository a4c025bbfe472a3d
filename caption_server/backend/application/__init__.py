"""Application layer: sessions, protocol handling and the caption pipeline."""

from .session_handler import SessionHandler
from .session_store import Caption, Session, SessionStore, TranslationCache
from .transcription_orchestrator import OrchestratorHooks, TranscriptionOrchestrator

__all__ = [
    "Caption",
    "OrchestratorHooks",
    "Session",
    "SessionHandler",
    "SessionStore",
    "TranscriptionOrchestrator",
    "TranslationCache",
]
