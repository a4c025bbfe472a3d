"""Single-flight transcription and translation pipeline per session."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Set

from caption_server.backend.application.session_store import Caption, Session
from caption_server.errors import CaptionError, ErrorCode
from caption_server.providers.base import STTProvider, TranslationProvider
from caption_server.utils.logger import TRANSCRIPT_LOGGER, set_session_id

if TYPE_CHECKING:
    from caption_server.backend.runtime.metrics import Metrics

LOGGER = logging.getLogger("caption_server.orchestrator")

CAPTION_UPDATE_EVENT = "caption.update"
CAPTION_ERROR_EVENT = "caption.error"

EventEmitter = Callable[[str, Dict[str, Any]], Awaitable[None]]


def _noop_caption(_session: Session, _caption: Caption) -> None:
    return None


@dataclass
class OrchestratorHooks:
    on_caption: Callable[[Session, Caption], None] = field(default=_noop_caption)


class TranscriptionOrchestrator:
    """Runs STT then translation for one batch at a time per session.

    Every exit path of ``process`` returns the session's processing state to
    idle. Results that arrive after the session was cleaned are dropped.
    """

    def __init__(
        self,
        stt: STTProvider,
        translator: Optional[TranslationProvider],
        metrics: Optional["Metrics"] = None,
        sample_rate: int = 16000,
        hooks: Optional[OrchestratorHooks] = None,
    ) -> None:
        self._stt = stt
        self._translator = translator
        if metrics is None:
            from caption_server.backend.runtime.metrics import Metrics

            metrics = Metrics()
        self._metrics = metrics
        self._sample_rate = sample_rate
        self._hooks = hooks or OrchestratorHooks()
        self._tasks: Set[asyncio.Task] = set()

    def maybe_dispatch(
        self, session: Session, emit: EventEmitter
    ) -> Optional[asyncio.Task]:
        """Start a pipeline run when the session's buffer is ready.

        Must be called from the event loop thread.
        """
        if session.cleaned:
            return None
        scheduler = session.scheduler
        if not scheduler.should_process_batch():
            return None
        scheduler.processing.begin_batch()
        batch = scheduler.take_batch()
        self._metrics.record_batch(len(batch))
        LOGGER.debug(
            "Dispatching batch bytes=%d remaining_sec=%.2f",
            len(batch),
            scheduler.buffered_seconds,
        )
        task = asyncio.get_running_loop().create_task(
            self._run_and_redispatch(session, batch, emit)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_and_redispatch(
        self, session: Session, batch: bytes, emit: EventEmitter
    ) -> None:
        await self.process(session, batch, emit)
        # Audio that arrived while the pipeline was busy is picked up here.
        self.maybe_dispatch(session, emit)

    async def process(self, session: Session, batch: bytes, emit: EventEmitter) -> None:
        set_session_id(session.session_id)
        processing = session.scheduler.processing
        try:
            processing.await_result()
            caption = await self._run_pipeline(session, batch)
            if caption is None:
                return
            if session.cleaned:
                self._orphan("caption")
                return
            session.captions.append(caption)
            self._metrics.record_caption(caption.stt_latency, caption.translation_latency)
            TRANSCRIPT_LOGGER.info(
                "caption original=%r translated=%r", caption.original, caption.translated
            )
            self._hooks.on_caption(session, caption)
            await self._safe_emit(emit, CAPTION_UPDATE_EVENT, caption.to_payload())
        except CaptionError as exc:
            self._metrics.record_error(exc.code.value)
            LOGGER.warning("Pipeline failed: %s", exc)
            if not session.cleaned:
                await self._safe_emit(emit, CAPTION_ERROR_EVENT, {"error": exc.detail})
        except Exception as exc:
            self._metrics.record_error(ErrorCode.PIPELINE_UNEXPECTED.value)
            LOGGER.exception("Unexpected pipeline error")
            if not session.cleaned:
                await self._safe_emit(emit, CAPTION_ERROR_EVENT, {"error": str(exc)})
        finally:
            processing.finish()

    async def _run_pipeline(self, session: Session, batch: bytes) -> Optional[Caption]:
        source = session.source_lang
        target = session.target_lang
        translator = self._translator_for(session)
        transcription = await self._stt.transcribe(batch, self._sample_rate, source)
        if session.cleaned:
            self._orphan("transcription")
            return None
        text = transcription.text.strip()
        if not text:
            self._metrics.record_empty_transcript()
            LOGGER.debug("Empty transcript; no caption emitted")
            return None

        translated = text
        translation_latency: Optional[float] = None
        if translator is not None:
            cached = session.translation_cache.get(text, source, target)
            self._metrics.record_translation_cache(cached is not None)
            if cached is not None:
                translated = cached
                translation_latency = 0.0
            else:
                result = await translator.translate(
                    session.session_id, text, source, target
                )
                if session.cleaned:
                    self._orphan("translation")
                    return None
                translated = result.translated or text
                translation_latency = result.latency_ms
                session.translation_cache.put(text, source, target, translated)

        return Caption(
            original=text,
            translated=translated,
            source_lang=source,
            target_lang=target,
            stt_latency=transcription.latency_ms,
            translation_latency=translation_latency,
        )

    def _translator_for(self, session: Session) -> Optional[TranslationProvider]:
        if not session.wants_translation:
            return None
        if self._translator is None:
            LOGGER.warning(
                "Translation to '%s' requested but no provider configured",
                session.target_lang,
            )
        return self._translator

    def _orphan(self, stage: str) -> None:
        self._metrics.record_result_orphaned()
        LOGGER.info("Dropping %s result for cleaned session", stage)

    async def _safe_emit(
        self, emit: EventEmitter, event: str, payload: Dict[str, Any]
    ) -> None:
        try:
            await emit(event, payload)
        except Exception:
            LOGGER.warning("Failed to emit %s; connection likely closed", event)

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight pipeline runs; returns False on timeout."""
        pending = [task for task in self._tasks if not task.done()]
        if not pending:
            return True
        _done, still_pending = await asyncio.wait(pending, timeout=timeout)
        return not still_pending

    @property
    def in_flight(self) -> int:
        return sum(1 for task in self._tasks if not task.done())


__all__ = [
    "CAPTION_ERROR_EVENT",
    "CAPTION_UPDATE_EVENT",
    "EventEmitter",
    "OrchestratorHooks",
    "TranscriptionOrchestrator",
]
