"""Provider interfaces for speech-to-text and translation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx


def http_error_detail(response: httpx.Response) -> str:
    """Best-effort error message from a provider's error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return response.text[:200]


@dataclass(frozen=True)
class TranscriptionResult:
    """Text recognized for one batch and the provider round-trip in ms."""

    text: str
    latency_ms: float


@dataclass(frozen=True)
class TranslationResult:
    translated: str
    latency_ms: float


class STTProvider(Protocol):
    """Speech-to-text provider.

    ``transcribe`` receives PCM16 little-endian mono bytes and raises
    ``TranscriptionError`` on failure.
    """

    async def transcribe(
        self, pcm16: bytes, sample_rate: int, language: str
    ) -> TranscriptionResult:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


class TranslationProvider(Protocol):
    """Translation provider; raises ``TranslationError`` on failure.

    Providers never cache. Caching is scoped to the session by the caller.
    """

    async def translate(
        self, session_id: str, text: str, source_lang: str, target_lang: str
    ) -> TranslationResult:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


__all__ = [
    "STTProvider",
    "TranscriptionResult",
    "TranslationProvider",
    "TranslationResult",
    "http_error_detail",
]
