"""OpenAI chat-completions translation provider."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import httpx

from caption_server.config.default import (
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_TRANSLATION_MODEL,
    DEFAULT_PROVIDER_TEMPERATURE,
    DEFAULT_PROVIDER_TIMEOUT_SEC,
)
from caption_server.errors import ErrorCode, TranslationError
from caption_server.providers.base import TranslationResult, http_error_detail

LOGGER = logging.getLogger("caption_server.providers.openai_translation")

SYSTEM_PROMPT = (
    "You are a professional translator. Translate the following text to "
    "{language}. Respond only with the translated text, no explanations."
)


class OpenAITranslationProvider:
    def __init__(
        self,
        api_key: Optional[str],
        language_name: Callable[[str], str],
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        model: str = DEFAULT_OPENAI_TRANSLATION_MODEL,
        temperature: float = DEFAULT_PROVIDER_TEMPERATURE,
        timeout_sec: float = DEFAULT_PROVIDER_TIMEOUT_SEC,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key:
            raise TranslationError(
                ErrorCode.PROVIDER_NOT_CONFIGURED,
                "OPENAI_API_KEY environment variable is not set",
            )
        self.model = model
        self.temperature = temperature
        self._language_name = language_name
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout_sec,
        )

    async def translate(
        self, session_id: str, text: str, source_lang: str, target_lang: str
    ) -> TranslationResult:
        started = time.perf_counter()
        language = self._language_name(target_lang) or target_lang
        body = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT.format(language=language)},
                {"role": "user", "content": text},
            ],
        }
        try:
            response = await self._client.post("/chat/completions", json=body)
        except httpx.HTTPError as exc:
            raise TranslationError(detail=f"Translation failed: {exc}") from exc
        latency_ms = (time.perf_counter() - started) * 1000.0
        if response.status_code >= 400:
            raise TranslationError(
                detail=f"Translation failed: {http_error_detail(response)}"
            )
        try:
            translated = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise TranslationError(
                detail="Translation failed: invalid response"
            ) from exc
        LOGGER.debug(
            "Translated %s->%s in %.0fms", source_lang, target_lang, latency_ms
        )
        return TranslationResult(
            translated=str(translated or "").strip(), latency_ms=round(latency_ms, 1)
        )

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["OpenAITranslationProvider", "SYSTEM_PROMPT"]
