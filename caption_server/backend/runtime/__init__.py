"""Runtime wiring and configuration for the caption application layer."""

from .config import (
    CaptionRuntimeConfig,
    LanguageRuntimeConfig,
    ProviderRuntimeConfig,
    StreamingRuntimeConfig,
)
from .runtime import ApplicationRuntime

__all__ = [
    "ApplicationRuntime",
    "CaptionRuntimeConfig",
    "LanguageRuntimeConfig",
    "ProviderRuntimeConfig",
    "StreamingRuntimeConfig",
]
