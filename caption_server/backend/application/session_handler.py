"""Per-connection handling of the caption session protocol."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from caption_server.backend.application.session_store import Session, utc_timestamp
from caption_server.backend.application.transcription_orchestrator import (
    EventEmitter,
)
from caption_server.backend.component.lifecycle import CleanupReason
from caption_server.config.languages import AUTO_DETECT
from caption_server.errors import (
    BufferOverflowError,
    ErrorCode,
    SessionNotFoundError,
    ack_payload_for,
)
from caption_server.utils.logger import clear_session_id, set_session_id

if TYPE_CHECKING:
    from caption_server.backend.runtime import ApplicationRuntime

LOGGER = logging.getLogger("caption_server.session_handler")

SESSION_START_EVENT = "session.start"
SESSION_STOP_EVENT = "session.stop"
SETTINGS_UPDATE_EVENT = "settings.update"
AUDIO_CHUNK_EVENT = "audio.chunk"


class SessionHandler:
    """Owns at most one session for a single client connection.

    The session id is the connection id, so a second ``session.start`` on the
    same connection replaces the earlier session.
    """

    def __init__(
        self,
        connection_id: str,
        runtime: "ApplicationRuntime",
        emit: EventEmitter,
    ) -> None:
        self.connection_id = connection_id
        self._runtime = runtime
        self._emit = emit
        self._languages = runtime.supported_languages

    @property
    def session(self) -> Optional[Session]:
        return self._runtime.session_store.get(self.connection_id)

    def handle_event(self, event: str, data: Any) -> Dict[str, Any]:
        """Dispatch a JSON control message and return its acknowledgment."""
        payload = data if isinstance(data, dict) else {}
        if event == SESSION_START_EVENT:
            return self.start_session(payload)
        if event == SESSION_STOP_EVENT:
            return self.stop_session()
        if event == SETTINGS_UPDATE_EVENT:
            return self.update_settings(payload)
        LOGGER.warning("Unknown event '%s'", event)
        return ack_payload_for(ErrorCode.MESSAGE_INVALID, f"Unknown event: {event}")

    def start_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        set_session_id(self.connection_id)
        try:
            source = self._languages.resolve_source(data.get("sourceLang"))
            target = self._languages.resolve_target(data.get("targetLang"))
            session = self._runtime.create_session(
                self.connection_id, source, target, emit=self._emit
            )
            LOGGER.info("Session started %s -> %s", source, target)
            return {
                "success": True,
                "sessionId": session.session_id,
                "sourceLang": session.source_lang,
                "targetLang": session.target_lang,
                "timestamp": utc_timestamp(),
            }
        finally:
            clear_session_id()

    def add_audio(self, data: bytes) -> Dict[str, Any]:
        """Buffer one audio chunk and kick the pipeline when a batch is ready."""
        session = self.session
        if session is None:
            return SessionNotFoundError().ack_payload()
        scheduler = session.scheduler
        if not scheduler.add_chunk(data):
            code = scheduler.last_rejection or ErrorCode.AUDIO_BUFFER_FULL
            return BufferOverflowError(code).ack_payload()
        self._runtime.lifecycle.touch(session)
        self._runtime.orchestrator.maybe_dispatch(session, self._emit)
        return {
            "success": True,
            "bufferedSeconds": round(scheduler.buffered_seconds, 3),
        }

    def stop_session(self) -> Dict[str, Any]:
        session = self.session
        if session is None:
            return SessionNotFoundError().ack_payload()
        set_session_id(self.connection_id)
        try:
            self._runtime.lifecycle.cleanup(session, CleanupReason.STOPPED)
            LOGGER.info("Session stopped")
        finally:
            clear_session_id()
        return {"success": True, "timestamp": utc_timestamp()}

    def update_settings(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Change languages mid-session; later batches use the new pair.

        Empty values are ignored. An unsupported source keeps the current one,
        an unsupported target disables translation.
        """
        session = self.session
        if session is None:
            return SessionNotFoundError().ack_payload()
        source = data.get("sourceLang")
        if source:
            normalized = str(source).strip().lower()
            if normalized == AUTO_DETECT or self._languages.is_supported(normalized):
                session.source_lang = normalized
            else:
                LOGGER.warning(
                    "Unsupported source language '%s'; keeping '%s'",
                    source,
                    session.source_lang,
                )
        target = data.get("targetLang")
        if target:
            session.target_lang = self._languages.resolve_target(str(target))
        LOGGER.info(
            "Session settings updated %s -> %s", session.source_lang, session.target_lang
        )
        return {
            "success": True,
            "sourceLang": session.source_lang,
            "targetLang": session.target_lang,
        }

    def disconnect(self) -> None:
        session = self.session
        if session is None:
            return
        self._runtime.lifecycle.cleanup(session, CleanupReason.DISCONNECTED)


__all__ = [
    "AUDIO_CHUNK_EVENT",
    "SESSION_START_EVENT",
    "SESSION_STOP_EVENT",
    "SETTINGS_UPDATE_EVENT",
    "SessionHandler",
]
