"""Application wiring for the caption server."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from caption_server.backend.application.session_store import Session, SessionStore
from caption_server.backend.application.transcription_orchestrator import (
    EventEmitter,
    TranscriptionOrchestrator,
)
from caption_server.backend.component.buffer_scheduler import (
    BufferLimits,
    BufferSchedulerHooks,
    SessionBufferScheduler,
)
from caption_server.backend.component.lifecycle import (
    CleanupReason,
    LifecycleHooks,
    SessionLifecycleManager,
)
from caption_server.backend.component.scheduled_task import (
    AsyncioTaskScheduler,
    TaskScheduler,
)
from caption_server.backend.runtime.config import (
    CaptionRuntimeConfig,
    ProviderRuntimeConfig,
)
from caption_server.backend.runtime.metrics import Metrics
from caption_server.config.languages import SupportedLanguages
from caption_server.errors import ErrorCode
from caption_server.providers import get_stt_backend, get_translation_backend
from caption_server.providers.base import STTProvider, TranslationProvider
from caption_server.utils.logger import LOGGER

_NO_TRANSLATION_BACKENDS = frozenset({"none", "off", "disabled", ""})


def build_stt_provider(config: ProviderRuntimeConfig) -> STTProvider:
    backend_cls = get_stt_backend(config.stt_backend)
    backend_name = (config.stt_backend or "faster_whisper").lower()
    if backend_name in {"faster_whisper", "faster-whisper", "fw", "local"}:
        return backend_cls(config.model_size, config.device, config.compute_type)
    return backend_cls(
        api_key=config.openai_api_key,
        base_url=config.openai_base_url,
        model=config.openai_stt_model,
        temperature=config.temperature,
        timeout_sec=config.timeout_sec,
    )


def build_translation_provider(
    config: ProviderRuntimeConfig, languages: SupportedLanguages
) -> Optional[TranslationProvider]:
    backend_name = (config.translation_backend or "").strip().lower()
    if backend_name in _NO_TRANSLATION_BACKENDS:
        return None
    backend_cls = get_translation_backend(backend_name)
    if backend_name in {"libretranslate", "libre", "libre_translate"}:
        return backend_cls(
            base_url=config.libretranslate_url,
            api_key=config.libretranslate_api_key,
            timeout_sec=config.timeout_sec,
        )
    return backend_cls(
        api_key=config.openai_api_key,
        language_name=languages.get_name,
        base_url=config.openai_base_url,
        model=config.openai_translation_model,
        temperature=config.temperature,
        timeout_sec=config.timeout_sec,
    )


class ApplicationRuntime:  # pylint: disable=too-many-instance-attributes
    """Builds and owns application-layer dependencies."""

    def __init__(
        self,
        config: CaptionRuntimeConfig,
        stt_provider: Optional[STTProvider] = None,
        translation_provider: Optional[TranslationProvider] = None,
        task_scheduler: Optional[TaskScheduler] = None,
    ) -> None:
        self.config = config
        self.metrics = Metrics()
        self.started_at = time.time()
        streaming = config.streaming
        language_config = config.languages
        self.supported_languages = SupportedLanguages(
            language_config.supported,
            default_source=language_config.default_source,
            default_target=language_config.default_target,
        )
        self.buffer_limits = BufferLimits(
            sample_rate=streaming.sample_rate,
            batch_size_sec=streaming.batch_size_sec,
            min_batch_sec=streaming.min_batch_sec,
            stale_after_sec=streaming.stale_after_sec,
            max_buffer_sec=streaming.max_buffer_sec,
            max_chunk_bytes=streaming.max_chunk_bytes,
        )
        self.task_scheduler: TaskScheduler = task_scheduler or AsyncioTaskScheduler()
        self.session_store = SessionStore()

        self.stt_provider = stt_provider or build_stt_provider(config.providers)
        if translation_provider is None:
            translation_provider = build_translation_provider(
                config.providers, self.supported_languages
            )
        self.translation_provider = translation_provider
        self.orchestrator = TranscriptionOrchestrator(
            stt=self.stt_provider,
            translator=self.translation_provider,
            metrics=self.metrics,
            sample_rate=streaming.sample_rate,
        )

        lifecycle_hooks = LifecycleHooks(
            on_stale_check=self._on_stale_check,
            on_timeout=self._on_session_timeout,
            on_cleaned=self._on_session_cleaned,
        )
        self.lifecycle = SessionLifecycleManager(
            store=self.session_store,
            scheduler=self.task_scheduler,
            inactivity_timeout_sec=streaming.inactivity_timeout_sec,
            stale_after_sec=streaming.stale_after_sec,
            hooks=lifecycle_hooks,
        )
        LOGGER.info(
            "Caption runtime ready (stt=%s, translation=%s)",
            type(self.stt_provider).__name__,
            type(self.translation_provider).__name__
            if self.translation_provider
            else "disabled",
        )

    def create_session(
        self,
        session_id: str,
        source_lang: str,
        target_lang: str,
        emit: Optional[EventEmitter] = None,
    ) -> Session:
        """Create, store and register a session, replacing any previous one."""
        existing = self.session_store.get(session_id)
        if existing is not None:
            self.lifecycle.cleanup(existing, CleanupReason.REPLACED)
        scheduler = SessionBufferScheduler(
            limits=self.buffer_limits,
            hooks=BufferSchedulerHooks(
                on_chunk_accepted=self.metrics.record_chunk,
                on_chunk_rejected=self._on_chunk_rejected,
            ),
            time_fn=self.task_scheduler.now,
        )
        session = Session(
            session_id=session_id,
            source_lang=source_lang,
            target_lang=target_lang,
            scheduler=scheduler,
            emit=emit,
        )
        self.session_store.create(session)
        self.lifecycle.register(session)
        self.metrics.increase_active_sessions()
        return session

    def health_snapshot(self) -> Dict[str, Any]:
        return {
            "activeSessions": len(self.session_store),
            "inFlightBatches": self.orchestrator.in_flight,
            "uptimeSec": round(time.time() - self.started_at, 1),
        }

    async def shutdown(self, timeout_sec: Optional[float] = 5.0) -> None:
        """Drain in-flight batches, clean every session and close providers."""
        drained = await self.orchestrator.drain(timeout_sec)
        if not drained:
            LOGGER.warning("Timed out waiting for in-flight batches during shutdown")
        cleaned = self.lifecycle.cleanup_all(CleanupReason.SHUTDOWN)
        if cleaned:
            LOGGER.info("Cleaned %d sessions on shutdown", cleaned)
        for provider in (self.stt_provider, self.translation_provider):
            close = getattr(provider, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception:
                LOGGER.exception("Failed to close provider %s", type(provider).__name__)

    def _on_stale_check(self, session: Session) -> None:
        if session.emit is None:
            return
        self.orchestrator.maybe_dispatch(session, session.emit)

    def _on_session_timeout(self, _session: Session) -> None:
        self.metrics.record_session_timeout()

    def _on_session_cleaned(self, _session: Session, reason: CleanupReason) -> None:
        self.metrics.decrease_active_sessions()
        logging.getLogger("caption_server.runtime").debug(
            "Session released (%s); active=%d", reason.value, len(self.session_store)
        )

    def _on_chunk_rejected(self, code: ErrorCode) -> None:
        self.metrics.record_chunk_rejected(code.value)
