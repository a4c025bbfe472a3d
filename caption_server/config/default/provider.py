"""Default values for speech-to-text and translation providers."""

from typing import Dict

DEFAULT_STT_BACKEND = "faster_whisper"
DEFAULT_MODEL_NAME = "small"
DEFAULT_DEVICE = "cpu"
DEFAULT_COMPUTE_TYPE = "int8"

DEFAULT_TRANSLATION_BACKEND = "openai"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_STT_MODEL = "whisper-1"
DEFAULT_OPENAI_TRANSLATION_MODEL = "gpt-4o"
DEFAULT_PROVIDER_TEMPERATURE = 0.3
DEFAULT_LIBRETRANSLATE_URL = "http://localhost:5000"
DEFAULT_PROVIDER_TIMEOUT_SEC = 30.0

OPENAI_API_KEY_ENV = "OPENAI_API_KEY"
LIBRETRANSLATE_API_KEY_ENV = "LIBRETRANSLATE_API_KEY"

PROVIDER_SECTION_MAP: Dict[str, Dict[str, str]] = {
    "stt": {
        "backend": "stt_backend",
        "model": "model",
        "device": "device",
        "compute_type": "compute_type",
        "openai_model": "openai_stt_model",
    },
    "translation": {
        "backend": "translation_backend",
        "openai_model": "openai_translation_model",
        "libretranslate_url": "libretranslate_url",
    },
    "provider": {
        "openai_base_url": "openai_base_url",
        "temperature": "provider_temperature",
        "timeout_sec": "provider_timeout_sec",
    },
}

__all__ = [
    "DEFAULT_STT_BACKEND",
    "DEFAULT_MODEL_NAME",
    "DEFAULT_DEVICE",
    "DEFAULT_COMPUTE_TYPE",
    "DEFAULT_TRANSLATION_BACKEND",
    "DEFAULT_OPENAI_BASE_URL",
    "DEFAULT_OPENAI_STT_MODEL",
    "DEFAULT_OPENAI_TRANSLATION_MODEL",
    "DEFAULT_PROVIDER_TEMPERATURE",
    "DEFAULT_LIBRETRANSLATE_URL",
    "DEFAULT_PROVIDER_TIMEOUT_SEC",
    "OPENAI_API_KEY_ENV",
    "LIBRETRANSLATE_API_KEY_ENV",
    "PROVIDER_SECTION_MAP",
]
