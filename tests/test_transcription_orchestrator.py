import asyncio

import pytest

from caption_server.backend.application.session_store import Session
from caption_server.backend.application.transcription_orchestrator import (
    CAPTION_ERROR_EVENT,
    CAPTION_UPDATE_EVENT,
    OrchestratorHooks,
    TranscriptionOrchestrator,
)
from caption_server.backend.component.buffer_scheduler import SessionBufferScheduler
from caption_server.backend.component.processing_state import ProcessingState
from caption_server.backend.runtime.metrics import Metrics
from caption_server.errors import TranscriptionError, TranslationError
from conftest import EmitRecorder, FakeSTT, FakeTranslator, pcm_seconds, settle


def _session(source="en", target="es"):
    return Session(
        session_id="conn-1",
        source_lang=source,
        target_lang=target,
        scheduler=SessionBufferScheduler(time_fn=lambda: 0.0),
    )


def _orchestrator(stt=None, translator=None, metrics=None, hooks=None):
    return TranscriptionOrchestrator(
        stt=stt or FakeSTT(),
        translator=translator,
        metrics=metrics or Metrics(),
        hooks=hooks,
    )


async def _feed(orchestrator, session, emit, seconds_list):
    for seconds in seconds_list:
        assert session.scheduler.add_chunk(pcm_seconds(seconds))
        orchestrator.maybe_dispatch(session, emit)
    await settle(orchestrator)


def test_three_point_two_seconds_yields_exactly_one_translated_caption():
    """Test en->es with 3.2 s in 1.5 s steps produces one final caption."""
    stt = FakeSTT(["hello world"])
    translator = FakeTranslator(latency_ms=80.0)
    orchestrator = _orchestrator(stt, translator)
    session = _session("en", "es")
    emit = EmitRecorder()

    asyncio.run(_feed(orchestrator, session, emit, [1.5, 1.5, 0.2]))

    updates = emit.of(CAPTION_UPDATE_EVENT)
    assert len(updates) == 1
    payload = updates[0]
    assert payload["isFinal"] is True
    assert payload["original"] == "hello world"
    assert payload["translated"] == "[es] hello world"
    assert payload["translationLatency"] == 80.0
    assert payload["sttLatency"] == 120.0
    assert stt.calls == [(96000, 16000, "en")]
    assert session.scheduler.buffered_seconds == pytest.approx(0.2)
    assert session.scheduler.processing.state is ProcessingState.IDLE
    assert len(session.captions) == 1


def test_single_flight_per_session():
    """Test a second batch waits until the first pipeline run finishes."""
    stt = FakeSTT(["first", "second"])
    orchestrator = _orchestrator(stt)
    session = _session(target="none")
    emit = EmitRecorder()

    async def scenario():
        stt.gate = asyncio.Event()
        session.scheduler.add_chunk(pcm_seconds(3.0))
        assert orchestrator.maybe_dispatch(session, emit) is not None
        await asyncio.sleep(0)
        session.scheduler.add_chunk(pcm_seconds(3.0))
        assert orchestrator.maybe_dispatch(session, emit) is None
        assert session.is_processing
        stt.gate.set()
        await settle(orchestrator)

    asyncio.run(scenario())

    assert stt.max_active == 1
    assert len(stt.calls) == 2
    assert [c["original"] for c in emit.of(CAPTION_UPDATE_EVENT)] == ["first", "second"]


def test_repeated_text_is_served_from_translation_cache():
    """Test the same triple is translated once; the repeat reports latency 0."""
    stt = FakeSTT(["good morning"])
    translator = FakeTranslator()
    orchestrator = _orchestrator(stt, translator)
    session = _session("en", "fr")
    emit = EmitRecorder()

    asyncio.run(_feed(orchestrator, session, emit, [3.0, 3.0]))

    updates = emit.of(CAPTION_UPDATE_EVENT)
    assert len(updates) == 2
    assert len(translator.calls) == 1
    assert updates[0]["translationLatency"] == 80.0
    assert updates[1]["translationLatency"] == 0.0
    assert updates[1]["translated"] == "[fr] good morning"
    metrics = orchestrator._metrics.render()
    assert metrics["translation_cache_hits"] == 1
    assert metrics["translation_cache_misses"] == 1


@pytest.mark.parametrize("source,target", [("en", "none"), ("ja", "ja")])
def test_translation_skipped_for_none_or_same_language(source, target):
    """Test no provider call and original text when translation is not needed."""
    translator = FakeTranslator()
    orchestrator = _orchestrator(FakeSTT(["konnichiwa"]), translator)
    session = _session(source, target)
    emit = EmitRecorder()

    asyncio.run(_feed(orchestrator, session, emit, [3.0]))

    payload = emit.of(CAPTION_UPDATE_EVENT)[0]
    assert payload["translated"] == payload["original"] == "konnichiwa"
    assert "translationLatency" not in payload
    assert translator.calls == []


def test_missing_translation_provider_keeps_original_text():
    """Test a translated pair without a provider still emits the transcript."""
    orchestrator = _orchestrator(FakeSTT(["bonjour"]), translator=None)
    session = _session("fr", "en")
    emit = EmitRecorder()

    asyncio.run(_feed(orchestrator, session, emit, [3.0]))

    payload = emit.of(CAPTION_UPDATE_EVENT)[0]
    assert payload["translated"] == payload["original"] == "bonjour"
    assert "translationLatency" not in payload
    assert emit.of(CAPTION_ERROR_EVENT) == []
    assert orchestrator._metrics.render()["translation_cache_misses"] == 0


def test_empty_transcript_emits_nothing():
    """Test silence produces no caption but frees the session."""
    orchestrator = _orchestrator(FakeSTT(["   "]), FakeTranslator())
    session = _session()
    emit = EmitRecorder()

    asyncio.run(_feed(orchestrator, session, emit, [3.0]))

    assert emit.events == []
    assert session.captions == []
    assert session.scheduler.processing.state is ProcessingState.IDLE
    assert orchestrator._metrics.render()["empty_transcripts_total"] == 1


def test_transcription_failure_emits_caption_error_and_recovers():
    """Test an STT error is isolated to its batch."""
    stt = FakeSTT()
    stt.error = TranscriptionError(detail="STT failed: upstream 500")
    translator = FakeTranslator()
    orchestrator = _orchestrator(stt, translator)
    session = _session()
    emit = EmitRecorder()

    asyncio.run(_feed(orchestrator, session, emit, [3.0]))

    assert emit.of(CAPTION_ERROR_EVENT) == [{"error": "STT failed: upstream 500"}]
    assert emit.of(CAPTION_UPDATE_EVENT) == []
    assert translator.calls == []
    assert session.scheduler.processing.state is ProcessingState.IDLE
    assert orchestrator._metrics.render()["error_counts"] == {"ERR2001": 1}

    stt.error = None
    asyncio.run(_feed(orchestrator, session, emit, [3.0]))
    assert len(emit.of(CAPTION_UPDATE_EVENT)) == 1


def test_translation_failure_emits_caption_error():
    """Test a translation error drops the caption for that batch."""
    translator = FakeTranslator()
    translator.error = TranslationError(detail="Translation failed: quota")
    orchestrator = _orchestrator(FakeSTT(), translator)
    session = _session()
    emit = EmitRecorder()

    asyncio.run(_feed(orchestrator, session, emit, [3.0]))

    assert emit.of(CAPTION_ERROR_EVENT) == [{"error": "Translation failed: quota"}]
    assert session.captions == []
    assert len(session.translation_cache) == 0


def test_unexpected_error_is_reported_and_state_reset():
    """Test non-domain exceptions still return the session to idle."""
    stt = FakeSTT()
    stt.error = RuntimeError("boom")
    orchestrator = _orchestrator(stt)
    session = _session()
    emit = EmitRecorder()

    asyncio.run(_feed(orchestrator, session, emit, [3.0]))

    assert emit.of(CAPTION_ERROR_EVENT) == [{"error": "boom"}]
    assert session.scheduler.processing.state is ProcessingState.IDLE
    assert orchestrator._metrics.render()["error_counts"] == {"ERR9001": 1}


def test_result_for_cleaned_session_is_orphaned():
    """Test a late result after cleanup is dropped and counted."""
    stt = FakeSTT()
    translator = FakeTranslator()
    orchestrator = _orchestrator(stt, translator)
    session = _session()
    emit = EmitRecorder()

    async def scenario():
        stt.gate = asyncio.Event()
        session.scheduler.add_chunk(pcm_seconds(3.0))
        orchestrator.maybe_dispatch(session, emit)
        await asyncio.sleep(0)
        session.cleaned = True
        stt.gate.set()
        await settle(orchestrator)

    asyncio.run(scenario())

    assert emit.events == []
    assert session.captions == []
    assert translator.calls == []
    assert orchestrator._metrics.render()["results_orphaned_total"] == 1


def test_no_dispatch_for_cleaned_session():
    """Test cleaned sessions never start a pipeline run."""
    orchestrator = _orchestrator()
    session = _session()
    session.scheduler.add_chunk(pcm_seconds(3.0))
    session.cleaned = True
    assert orchestrator.maybe_dispatch(session, EmitRecorder()) is None


def test_emit_failure_does_not_break_pipeline():
    """Test a closed connection does not leave the session busy."""
    orchestrator = _orchestrator(FakeSTT(), FakeTranslator())
    session = _session()

    async def broken_emit(_event, _data):
        raise ConnectionError("socket closed")

    asyncio.run(_feed(orchestrator, session, broken_emit, [3.0]))

    assert len(session.captions) == 1
    assert session.scheduler.processing.state is ProcessingState.IDLE


def test_settings_change_applies_to_next_batch():
    """Test later batches use the updated language pair."""
    translator = FakeTranslator()
    orchestrator = _orchestrator(FakeSTT(["hi"]), translator)
    session = _session("en", "es")
    emit = EmitRecorder()

    asyncio.run(_feed(orchestrator, session, emit, [3.0]))
    session.target_lang = "ko"
    asyncio.run(_feed(orchestrator, session, emit, [3.0]))

    assert [call[3] for call in translator.calls] == ["es", "ko"]
    assert [c["targetLang"] for c in emit.of(CAPTION_UPDATE_EVENT)] == ["es", "ko"]


def test_caption_hook_receives_each_caption():
    """Test the on_caption hook sees every emitted caption."""
    seen = []
    orchestrator = _orchestrator(
        FakeSTT(["hook"]),
        hooks=OrchestratorHooks(on_caption=lambda s, c: seen.append(c.original)),
    )
    session = _session(target="none")

    asyncio.run(_feed(orchestrator, session, EmitRecorder(), [3.0]))

    assert seen == ["hook"]
