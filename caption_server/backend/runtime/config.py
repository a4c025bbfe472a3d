"""Runtime configuration models for the caption application layer."""

from dataclasses import dataclass, field
from typing import Dict, Optional

from caption_server.config.languages import DEFAULT_LANGUAGES


@dataclass
class ProviderRuntimeConfig:
    """Speech-to-text and translation provider configuration."""

    stt_backend: str = "faster_whisper"
    model_size: str = "small"
    device: str = "cpu"
    compute_type: str = "int8"
    openai_stt_model: str = "whisper-1"
    translation_backend: str = "openai"
    openai_translation_model: str = "gpt-4o"
    libretranslate_url: str = "http://localhost:5000"
    openai_base_url: str = "https://api.openai.com/v1"
    temperature: float = 0.3
    timeout_sec: float = 30.0
    openai_api_key: Optional[str] = None
    libretranslate_api_key: Optional[str] = None


@dataclass
class StreamingRuntimeConfig:
    """Buffering, batching and session lifecycle configuration."""

    sample_rate: int = 16000
    batch_size_sec: float = 3.0
    min_batch_sec: float = 0.5
    stale_after_sec: float = 2.0
    max_buffer_sec: float = 60.0
    max_chunk_bytes: int = 1024 * 1024
    inactivity_timeout_sec: float = 300.0


@dataclass
class LanguageRuntimeConfig:
    supported: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_LANGUAGES))
    default_source: str = "en"
    default_target: str = "none"


@dataclass
class CaptionRuntimeConfig:
    """Top-level configuration for the caption server runtime."""

    providers: ProviderRuntimeConfig = field(default_factory=ProviderRuntimeConfig)
    streaming: StreamingRuntimeConfig = field(default_factory=StreamingRuntimeConfig)
    languages: LanguageRuntimeConfig = field(default_factory=LanguageRuntimeConfig)
