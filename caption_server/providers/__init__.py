"""Provider registry for speech-to-text and translation backends."""

from typing import Type

from caption_server.providers.base import (
    STTProvider,
    TranscriptionResult,
    TranslationProvider,
    TranslationResult,
)
from caption_server.providers.libretranslate import LibreTranslateProvider
from caption_server.providers.openai_stt import OpenAISTTProvider
from caption_server.providers.openai_translation import OpenAITranslationProvider


def get_stt_backend(name: str) -> Type:
    """Resolve a speech-to-text provider implementation by name."""
    normalized = (name or "faster_whisper").lower()
    if normalized in {"faster_whisper", "faster-whisper", "fw", "local"}:
        try:
            from caption_server.providers.faster_whisper import (
                FasterWhisperSTTProvider,
            )
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "faster_whisper backend requires the faster-whisper package."
            ) from exc

        return FasterWhisperSTTProvider
    if normalized in {"openai", "whisper-1", "openai_whisper", "whisper_api"}:
        return OpenAISTTProvider
    raise ValueError(f"Unknown STT backend: {name}")


def get_translation_backend(name: str) -> Type:
    """Resolve a translation provider implementation by name."""
    normalized = (name or "openai").lower()
    if normalized in {"openai", "gpt", "chat"}:
        return OpenAITranslationProvider
    if normalized in {"libretranslate", "libre", "libre_translate"}:
        return LibreTranslateProvider
    raise ValueError(f"Unknown translation backend: {name}")


__all__ = [
    "STTProvider",
    "TranscriptionResult",
    "TranslationProvider",
    "TranslationResult",
    "get_stt_backend",
    "get_translation_backend",
]
