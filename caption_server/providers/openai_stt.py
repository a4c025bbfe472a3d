"""OpenAI audio transcription provider."""

from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from caption_server.config.default import (
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_STT_MODEL,
    DEFAULT_PROVIDER_TEMPERATURE,
    DEFAULT_PROVIDER_TIMEOUT_SEC,
)
from caption_server.config.languages import AUTO_DETECT
from caption_server.errors import ErrorCode, TranscriptionError
from caption_server.providers.base import TranscriptionResult, http_error_detail
from caption_server.utils.audio import pcm16_to_wav

LOGGER = logging.getLogger("caption_server.providers.openai_stt")


class OpenAISTTProvider:
    """Uploads each batch as a WAV file to ``/audio/transcriptions``."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        model: str = DEFAULT_OPENAI_STT_MODEL,
        temperature: float = DEFAULT_PROVIDER_TEMPERATURE,
        timeout_sec: float = DEFAULT_PROVIDER_TIMEOUT_SEC,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key:
            raise TranscriptionError(
                ErrorCode.PROVIDER_NOT_CONFIGURED,
                "OPENAI_API_KEY environment variable is not set",
            )
        self.model = model
        self.temperature = temperature
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout_sec,
        )

    async def transcribe(
        self, pcm16: bytes, sample_rate: int, language: str
    ) -> TranscriptionResult:
        started = time.perf_counter()
        wav_bytes = pcm16_to_wav(pcm16, sample_rate, 1)
        data = {"model": self.model, "temperature": str(self.temperature)}
        if language and language != AUTO_DETECT:
            data["language"] = language[:2]
        files = {"file": ("audio.wav", wav_bytes, "audio/wav")}
        LOGGER.debug("Uploading %d bytes of WAV for transcription", len(wav_bytes))
        try:
            response = await self._client.post(
                "/audio/transcriptions", data=data, files=files
            )
        except httpx.HTTPError as exc:
            raise TranscriptionError(detail=f"STT failed: {exc}") from exc
        latency_ms = (time.perf_counter() - started) * 1000.0
        if response.status_code >= 400:
            raise TranscriptionError(
                detail=f"STT failed: {http_error_detail(response)}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TranscriptionError(detail="STT failed: invalid response") from exc
        text = str(payload.get("text") or "").strip()
        return TranscriptionResult(text=text, latency_ms=round(latency_ms, 1))

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["OpenAISTTProvider"]
