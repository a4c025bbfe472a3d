"""Client SDK helpers for streaming audio to the caption server."""

from .streaming import (
    CaptionUpdate,
    ConnectionStatus,
    RetryConfig,
    StreamingClient,
    encode_audio,
)

__all__ = [
    "CaptionUpdate",
    "ConnectionStatus",
    "RetryConfig",
    "StreamingClient",
    "encode_audio",
]
