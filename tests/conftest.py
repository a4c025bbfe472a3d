import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from caption_server.backend.component.scheduled_task import ManualTaskScheduler
from caption_server.backend.runtime import (
    ApplicationRuntime,
    CaptionRuntimeConfig,
    StreamingRuntimeConfig,
)
from caption_server.providers.base import TranscriptionResult, TranslationResult

BYTES_PER_SECOND = 32000  # 16 kHz mono PCM16


def pcm_seconds(seconds: float, fill: int = 1) -> bytes:
    """Silence-like PCM16 payload of the given duration."""
    sample_count = int(round(seconds * BYTES_PER_SECOND)) // 2
    return fill.to_bytes(2, "little", signed=True) * sample_count


class FakeSTT:
    def __init__(self, texts: Optional[List[str]] = None, latency_ms: float = 120.0):
        self.texts = list(texts or ["hello world"])
        self.latency_ms = latency_ms
        self.calls: List[Tuple[int, int, str]] = []
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.active = 0
        self.max_active = 0
        self.closed = False

    async def transcribe(self, pcm16: bytes, sample_rate: int, language: str):
        self.calls.append((len(pcm16), sample_rate, language))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.error is not None:
                raise self.error
            text = self.texts[min(len(self.calls), len(self.texts)) - 1]
            return TranscriptionResult(text=text, latency_ms=self.latency_ms)
        finally:
            self.active -= 1

    async def close(self) -> None:
        self.closed = True


class FakeTranslator:
    def __init__(self, latency_ms: float = 80.0):
        self.latency_ms = latency_ms
        self.calls: List[Tuple[str, str, str, str]] = []
        self.error: Optional[Exception] = None
        self.closed = False

    async def translate(
        self, session_id: str, text: str, source_lang: str, target_lang: str
    ):
        self.calls.append((session_id, text, source_lang, target_lang))
        if self.error is not None:
            raise self.error
        return TranslationResult(
            translated=f"[{target_lang}] {text}", latency_ms=self.latency_ms
        )

    async def close(self) -> None:
        self.closed = True


class EmitRecorder:
    """Collects pushed events the way a connection sender would."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def __call__(self, event: str, data: Dict[str, Any]) -> None:
        self.events.append((event, data))

    def of(self, event: str) -> List[Dict[str, Any]]:
        return [data for name, data in self.events if name == event]


async def settle(orchestrator) -> None:
    """Wait until no pipeline run (including re-dispatched ones) is in flight."""
    for _ in range(20):
        await asyncio.sleep(0)
        if orchestrator.in_flight == 0:
            return
        await orchestrator.drain(timeout=1.0)


@pytest.fixture
def fake_stt() -> FakeSTT:
    return FakeSTT()


@pytest.fixture
def fake_translator() -> FakeTranslator:
    return FakeTranslator()


@pytest.fixture
def manual_scheduler() -> ManualTaskScheduler:
    return ManualTaskScheduler()


@pytest.fixture
def make_runtime(fake_stt, fake_translator):
    """Build an ApplicationRuntime wired to fake providers."""

    def _make(task_scheduler=None, **streaming_overrides) -> ApplicationRuntime:
        config = CaptionRuntimeConfig(
            streaming=StreamingRuntimeConfig(**streaming_overrides)
        )
        return ApplicationRuntime(
            config,
            stt_provider=fake_stt,
            translation_provider=fake_translator,
            task_scheduler=task_scheduler,
        )

    return _make
