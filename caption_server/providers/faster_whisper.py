"""Local faster-whisper speech-to-text provider."""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent import futures
from typing import Any, Dict, Optional

from faster_whisper import WhisperModel

from caption_server.config.languages import AUTO_DETECT
from caption_server.errors import TranscriptionError
from caption_server.providers.base import TranscriptionResult
from caption_server.utils.audio import ensure_16k, pcm16_to_float32

LOGGER = logging.getLogger("caption_server.providers.faster_whisper")

DEFAULT_DECODE_OPTIONS: Dict[str, Any] = {
    "beam_size": 1,
    "temperature": 0.0,
    "without_timestamps": True,
    "condition_on_previous_text": False,
}


class FasterWhisperSTTProvider:
    """Encapsulates a Whisper model and a single-thread executor for decode."""

    def __init__(
        self,
        model_size: str,
        device: str,
        compute_type: str,
        decode_options: Optional[Dict[str, Any]] = None,
        model: Any = None,
    ) -> None:
        self.model = model or WhisperModel(
            model_size, device=device, compute_type=compute_type
        )
        self.executor = futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="whisper-decode"
        )
        self.decode_options = dict(DEFAULT_DECODE_OPTIONS)
        if decode_options:
            self.decode_options.update(decode_options)

    async def transcribe(
        self, pcm16: bytes, sample_rate: int, language: str
    ) -> TranscriptionResult:
        started = time.perf_counter()
        future = self.executor.submit(self._decode, pcm16, sample_rate, language)
        try:
            text = await asyncio.wrap_future(future)
        except TranscriptionError:
            raise
        except Exception as exc:
            raise TranscriptionError(detail=f"STT failed: {exc}") from exc
        latency_ms = (time.perf_counter() - started) * 1000.0
        return TranscriptionResult(text=text, latency_ms=round(latency_ms, 1))

    def _decode(self, pcm16: bytes, sample_rate: int, language: str) -> str:
        """Decode bytes inside the worker thread."""
        if len(pcm16) == 0:
            return ""
        audio = ensure_16k(pcm16_to_float32(pcm16), sample_rate)
        options = dict(self.decode_options)
        if language and language != AUTO_DETECT:
            options["language"] = language[:2]
        segments, _info = self.model.transcribe(audio, **options)
        text = " ".join(segment.text.strip() for segment in segments)
        LOGGER.debug(
            "decode audio=%.2fs chars=%d", len(audio) / 16000.0, len(text.strip())
        )
        return text.strip()

    async def close(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["FasterWhisperSTTProvider"]
