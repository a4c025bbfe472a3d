import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from caption_server.config.default import (
    DEFAULT_BATCH_SIZE_SEC,
    DEFAULT_COMPUTE_TYPE,
    DEFAULT_DEVICE,
    DEFAULT_HOST,
    DEFAULT_INACTIVITY_TIMEOUT_SEC,
    DEFAULT_LIBRETRANSLATE_URL,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_BUFFER_SEC,
    DEFAULT_MAX_CHUNK_BYTES,
    DEFAULT_MIN_BATCH_SEC,
    DEFAULT_MODEL_NAME,
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_STT_MODEL,
    DEFAULT_OPENAI_TRANSLATION_MODEL,
    DEFAULT_PORT,
    DEFAULT_PROVIDER_TEMPERATURE,
    DEFAULT_PROVIDER_TIMEOUT_SEC,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_STALE_AFTER_SEC,
    DEFAULT_STT_BACKEND,
    DEFAULT_TRANSCRIPT_LOG_FILE,
    DEFAULT_TRANSLATION_BACKEND,
    DEFAULT_WS_PATH,
    LIBRETRANSLATE_API_KEY_ENV,
    OPENAI_API_KEY_ENV,
    PROVIDER_SECTION_MAP,
    SERVER_SECTION_MAP,
)
from caption_server.config.languages import DEFAULT_LANGUAGES, NO_TRANSLATION


def default_language_map() -> Dict[str, str]:
    return dict(DEFAULT_LANGUAGES)


@dataclass
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    ws_path: str = DEFAULT_WS_PATH
    sample_rate: int = DEFAULT_SAMPLE_RATE
    batch_size_sec: float = DEFAULT_BATCH_SIZE_SEC
    min_batch_sec: float = DEFAULT_MIN_BATCH_SEC
    stale_after_sec: float = DEFAULT_STALE_AFTER_SEC
    max_buffer_sec: float = DEFAULT_MAX_BUFFER_SEC
    max_chunk_bytes: int = DEFAULT_MAX_CHUNK_BYTES
    inactivity_timeout_sec: float = DEFAULT_INACTIVITY_TIMEOUT_SEC
    supported_languages: Dict[str, str] = field(default_factory=default_language_map)
    default_source_lang: str = "en"
    default_target_lang: str = NO_TRANSLATION
    stt_backend: str = DEFAULT_STT_BACKEND
    model: str = DEFAULT_MODEL_NAME
    device: str = DEFAULT_DEVICE
    compute_type: str = DEFAULT_COMPUTE_TYPE
    openai_stt_model: str = DEFAULT_OPENAI_STT_MODEL
    translation_backend: str = DEFAULT_TRANSLATION_BACKEND
    openai_translation_model: str = DEFAULT_OPENAI_TRANSLATION_MODEL
    libretranslate_url: str = DEFAULT_LIBRETRANSLATE_URL
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    provider_temperature: float = DEFAULT_PROVIDER_TEMPERATURE
    provider_timeout_sec: float = DEFAULT_PROVIDER_TIMEOUT_SEC
    openai_api_key: Optional[str] = None
    libretranslate_api_key: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = DEFAULT_LOG_FILE
    transcript_log_file: Optional[str] = DEFAULT_TRANSCRIPT_LOG_FILE


PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "server.yaml"

SECTION_MAP: Dict[str, Dict[str, str]] = dict(SERVER_SECTION_MAP)
SECTION_MAP.update(PROVIDER_SECTION_MAP)

# Secrets are never read from YAML.
_SECRET_FIELDS = frozenset({"openai_api_key", "libretranslate_api_key"})


def load_config(server_path: Optional[Path] = None) -> ServerConfig:
    """Load server configuration from YAML and environment, falling back to defaults."""
    cfg = ServerConfig()
    server_data = _read_yaml(server_path or DEFAULT_CONFIG_PATH)
    if server_data:
        _apply_sections(cfg, server_data)
    _apply_environment(cfg)
    return cfg


def _read_yaml(path: Optional[Path]) -> Optional[Dict[str, Any]]:
    if not path or not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if isinstance(data, dict):
        return data
    return None


def _apply_sections(cfg: ServerConfig, raw: Dict[str, Any]) -> None:
    field_names = {f.name for f in fields(ServerConfig)} - _SECRET_FIELDS
    for section, mapping in SECTION_MAP.items():
        data = raw.get(section)
        if not isinstance(data, dict):
            continue
        for key, attr in mapping.items():
            if key in data and data[key] is not None:
                setattr(cfg, attr, data[key])
        if section == "languages":
            _apply_supported_languages(cfg, data.get("supported"))

    for key, value in raw.items():
        if key in SECTION_MAP:
            continue
        if key in field_names and value is not None:
            setattr(cfg, key, value)


def _apply_supported_languages(cfg: ServerConfig, supported: Any) -> None:
    normalized = _normalize_languages(supported)
    if normalized:
        cfg.supported_languages = normalized


def _normalize_languages(supported: Any) -> Dict[str, str]:
    if isinstance(supported, dict):
        return {
            str(code).strip().lower(): str(name or "")
            for code, name in supported.items()
            if code
        }
    if isinstance(supported, list):
        return {
            str(code).strip().lower(): DEFAULT_LANGUAGES.get(str(code).lower(), "")
            for code in supported
            if code
        }
    return {}


def _apply_environment(cfg: ServerConfig) -> None:
    openai_key = os.getenv(OPENAI_API_KEY_ENV, "").strip()
    if openai_key:
        cfg.openai_api_key = openai_key
    libre_key = os.getenv(LIBRETRANSLATE_API_KEY_ENV, "").strip()
    if libre_key:
        cfg.libretranslate_api_key = libre_key


__all__ = [
    "ServerConfig",
    "DEFAULT_CONFIG_PATH",
    "SECTION_MAP",
    "load_config",
]
