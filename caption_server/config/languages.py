"""Supported caption languages and request-time validation."""

import logging
from typing import Dict, Mapping, Optional, Set

LOGGER = logging.getLogger("caption_server")

NO_TRANSLATION = "none"
AUTO_DETECT = "auto"

DEFAULT_LANGUAGES: Dict[str, str] = {
    "en": "English",
    "ja": "Japanese",
    "es": "Spanish",
    "fr": "French",
    "ko": "Korean",
}


class SupportedLanguages:
    """Lookup for supported language codes and display names."""

    def __init__(
        self,
        language_map: Optional[Mapping[str, str]] = None,
        default_source: str = "en",
        default_target: str = NO_TRANSLATION,
    ) -> None:
        source = language_map if language_map else DEFAULT_LANGUAGES
        self._language_map: Dict[str, str] = {
            str(code).strip().lower(): str(name or "").strip()
            for code, name in source.items()
            if code
        }
        self.default_source = default_source.strip().lower()
        self.default_target = default_target.strip().lower()

    def get_codes(self) -> Set[str]:
        return set(self._language_map.keys())

    def get_name(self, code: str) -> str:
        if not code:
            return ""
        return self._language_map.get(code.lower(), "")

    def is_supported(self, code: Optional[str]) -> bool:
        return bool(code) and code.strip().lower() in self._language_map

    def resolve_source(self, code: Optional[str]) -> str:
        """Normalize a source language, falling back to the default."""
        normalized = (code or "").strip().lower()
        if normalized == AUTO_DETECT:
            return AUTO_DETECT
        if normalized in self._language_map:
            return normalized
        if normalized:
            LOGGER.warning(
                "Unsupported source language '%s'; using '%s'",
                code,
                self.default_source,
            )
        return self.default_source

    def resolve_target(self, code: Optional[str]) -> str:
        """Normalize a target language; unknown codes disable translation."""
        normalized = (code or "").strip().lower()
        if normalized == NO_TRANSLATION or normalized in self._language_map:
            return normalized
        if normalized:
            LOGGER.warning(
                "Unsupported target language '%s'; using '%s'",
                code,
                self.default_target,
            )
        return self.default_target

    def as_list(self) -> list[Dict[str, str]]:
        return [
            {"code": code, "name": name}
            for code, name in sorted(self._language_map.items())
        ]


__all__ = ["AUTO_DETECT", "DEFAULT_LANGUAGES", "NO_TRANSLATION", "SupportedLanguages"]
