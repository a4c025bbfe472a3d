"""LibreTranslate translation provider."""

from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from caption_server.config.default import (
    DEFAULT_LIBRETRANSLATE_URL,
    DEFAULT_PROVIDER_TIMEOUT_SEC,
)
from caption_server.config.languages import AUTO_DETECT
from caption_server.errors import TranslationError
from caption_server.providers.base import TranslationResult, http_error_detail

LOGGER = logging.getLogger("caption_server.providers.libretranslate")


class LibreTranslateProvider:
    """POSTs to ``{url}/translate``; a rate-limited or empty reply is an error."""

    def __init__(
        self,
        base_url: str = DEFAULT_LIBRETRANSLATE_URL,
        api_key: Optional[str] = None,
        timeout_sec: float = DEFAULT_PROVIDER_TIMEOUT_SEC,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout_sec
        )

    async def translate(
        self, session_id: str, text: str, source_lang: str, target_lang: str
    ) -> TranslationResult:
        started = time.perf_counter()
        payload = {
            "q": text,
            "source": source_lang or AUTO_DETECT,
            "target": target_lang,
            "format": "text",
        }
        if self.api_key:
            payload["api_key"] = self.api_key
        try:
            response = await self._client.post("/translate", json=payload)
        except httpx.HTTPError as exc:
            raise TranslationError(detail=f"Translation failed: {exc}") from exc
        latency_ms = (time.perf_counter() - started) * 1000.0
        if response.status_code == 429:
            LOGGER.warning("LibreTranslate rate limited")
        if response.status_code >= 400:
            raise TranslationError(
                detail=f"Translation failed: {http_error_detail(response)}"
            )
        try:
            translated = str(response.json().get("translatedText") or "")
        except (ValueError, AttributeError) as exc:
            raise TranslationError(
                detail="Translation failed: invalid response"
            ) from exc
        if not translated:
            raise TranslationError(detail="Translation failed: empty response")
        return TranslationResult(translated=translated, latency_ms=round(latency_ms, 1))

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["LibreTranslateProvider"]
