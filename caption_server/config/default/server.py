"""Default values for server/runtime configuration."""

from typing import Dict

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3001
DEFAULT_WS_PATH = "/ws"
DEFAULT_SAMPLE_RATE = 16000
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = None
DEFAULT_TRANSCRIPT_LOG_FILE = None

# Buffering and batch scheduling.
DEFAULT_BATCH_SIZE_SEC = 3.0
DEFAULT_MIN_BATCH_SEC = 0.5
DEFAULT_STALE_AFTER_SEC = 2.0
DEFAULT_MAX_BUFFER_SEC = 60.0
DEFAULT_MAX_CHUNK_BYTES = 1024 * 1024

# Session lifecycle.
DEFAULT_INACTIVITY_TIMEOUT_SEC = 300.0

SERVER_SECTION_MAP: Dict[str, Dict[str, str]] = {
    "server": {
        "host": "host",
        "port": "port",
        "ws_path": "ws_path",
        "sample_rate": "sample_rate",
    },
    "buffer": {
        "batch_size_sec": "batch_size_sec",
        "min_batch_sec": "min_batch_sec",
        "stale_after_sec": "stale_after_sec",
        "max_buffer_sec": "max_buffer_sec",
        "max_chunk_bytes": "max_chunk_bytes",
    },
    "session": {
        "inactivity_timeout_sec": "inactivity_timeout_sec",
    },
    "languages": {
        "default_source": "default_source_lang",
        "default_target": "default_target_lang",
    },
    "logging": {
        "level": "log_level",
        "file": "log_file",
        "transcript_file": "transcript_log_file",
    },
}

__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "DEFAULT_WS_PATH",
    "DEFAULT_SAMPLE_RATE",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_LOG_FILE",
    "DEFAULT_TRANSCRIPT_LOG_FILE",
    "DEFAULT_BATCH_SIZE_SEC",
    "DEFAULT_MIN_BATCH_SEC",
    "DEFAULT_STALE_AFTER_SEC",
    "DEFAULT_MAX_BUFFER_SEC",
    "DEFAULT_MAX_CHUNK_BYTES",
    "DEFAULT_INACTIVITY_TIMEOUT_SEC",
    "SERVER_SECTION_MAP",
]
