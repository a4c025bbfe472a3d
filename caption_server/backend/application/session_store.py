"""Session state and the injected session store."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from caption_server.backend.component.buffer_scheduler import SessionBufferScheduler
from caption_server.config.languages import NO_TRANSLATION
from caption_server.errors import SessionNotFoundError

LOGGER = logging.getLogger("caption_server.session_store")


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Caption:
    original: str
    translated: str
    source_lang: str
    target_lang: str
    stt_latency: float
    translation_latency: Optional[float] = None
    is_final: bool = True
    timestamp: str = field(default_factory=utc_timestamp)

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation for ``caption.update``."""
        payload: Dict[str, Any] = {
            "original": self.original,
            "translated": self.translated,
            "sourceLang": self.source_lang,
            "targetLang": self.target_lang,
            "isFinal": self.is_final,
            "sttLatency": self.stt_latency,
            "timestamp": self.timestamp,
        }
        if self.translation_latency is not None:
            payload["translationLatency"] = self.translation_latency
        return payload


class TranslationCache:
    """Session-scoped cache keyed by the exact (text, source, target) triple."""

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str, str], str] = {}

    def get(self, text: str, source: str, target: str) -> Optional[str]:
        return self._entries.get((text, source, target))

    def put(self, text: str, source: str, target: str, translated: str) -> None:
        self._entries[(text, source, target)] = translated

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class Session:
    session_id: str
    source_lang: str
    target_lang: str
    scheduler: SessionBufferScheduler
    captions: List[Caption] = field(default_factory=list)
    translation_cache: TranslationCache = field(default_factory=TranslationCache)
    created_at: float = field(default_factory=time.time)
    cleaned: bool = False
    # Push channel of the owning connection.
    emit: Optional[Callable[[str, Dict[str, Any]], Awaitable[None]]] = None

    @property
    def wants_translation(self) -> bool:
        return (
            self.target_lang != NO_TRANSLATION and self.target_lang != self.source_lang
        )

    @property
    def buffered_seconds(self) -> float:
        return self.scheduler.buffered_seconds

    @property
    def is_processing(self) -> bool:
        return self.scheduler.processing.is_busy

    def summary(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "sourceLang": self.source_lang,
            "targetLang": self.target_lang,
            "bufferedSeconds": round(self.scheduler.buffered_seconds, 3),
            "processingState": self.scheduler.processing.state.value,
            "captionCount": len(self.captions),
            "createdAt": datetime.fromtimestamp(self.created_at, timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
        }


class SessionStore:
    """Thread-safe map of live sessions keyed by connection id."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, session: Session) -> Optional[Session]:
        """Insert a session and return the one it replaced, if any."""
        with self._lock:
            previous = self._sessions.get(session.session_id)
            self._sessions[session.session_id] = session
        LOGGER.info(
            "Session stored source=%s target=%s",
            session.source_lang,
            session.target_lang,
        )
        return previous

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError()
        return session

    def remove(self, session_id: str, session: Optional[Session] = None) -> bool:
        """Remove a session; with ``session`` given, only if it is still current."""
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return False
            if session is not None and current is not session:
                return False
            del self._sessions[session_id]
            return True

    def snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            sessions = list(self._sessions.values())
        return [session.summary() for session in sessions]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions


__all__ = ["Caption", "Session", "SessionStore", "TranslationCache", "utc_timestamp"]
