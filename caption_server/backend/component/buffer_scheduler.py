"""Per-session audio buffer with batch-trigger scheduling."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from caption_server.backend.component.processing_state import ProcessingStateMachine
from caption_server.config.default import (
    DEFAULT_BATCH_SIZE_SEC,
    DEFAULT_MAX_BUFFER_SEC,
    DEFAULT_MAX_CHUNK_BYTES,
    DEFAULT_MIN_BATCH_SEC,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_STALE_AFTER_SEC,
)
from caption_server.errors import ErrorCode
from caption_server.utils.audio import bytes_per_second

LOGGER = logging.getLogger("caption_server.buffer_scheduler")


def _noop_accepted(_byte_length: int) -> None:
    return None


def _noop_rejected(_code: ErrorCode) -> None:
    return None


@dataclass(frozen=True)
class BufferLimits:
    """Thresholds that drive buffering and batch dispatch."""

    sample_rate: int = DEFAULT_SAMPLE_RATE
    batch_size_sec: float = DEFAULT_BATCH_SIZE_SEC
    min_batch_sec: float = DEFAULT_MIN_BATCH_SEC
    stale_after_sec: float = DEFAULT_STALE_AFTER_SEC
    max_buffer_sec: float = DEFAULT_MAX_BUFFER_SEC
    max_chunk_bytes: int = DEFAULT_MAX_CHUNK_BYTES

    @property
    def bytes_per_second(self) -> int:
        return bytes_per_second(self.sample_rate)

    @property
    def batch_bytes(self) -> int:
        return int(math.ceil(self.batch_size_sec * self.bytes_per_second))


@dataclass
class BufferSchedulerHooks:
    on_chunk_accepted: Callable[[int], None] = field(default=_noop_accepted)
    on_chunk_rejected: Callable[[ErrorCode], None] = field(default=_noop_rejected)


class SessionBufferScheduler:
    """Accumulates PCM16 audio for one session and decides when to flush it.

    Buffered duration is tracked separately from the byte buffer: ``take_batch``
    always subtracts the nominal batch size even when fewer bytes were present,
    so the tracked value can run below the real buffered audio.
    """

    def __init__(
        self,
        limits: Optional[BufferLimits] = None,
        hooks: Optional[BufferSchedulerHooks] = None,
        time_fn: Optional[Callable[[], float]] = None,
    ) -> None:
        self.limits = limits or BufferLimits()
        self._hooks = hooks or BufferSchedulerHooks()
        self._time_fn = time_fn or time.monotonic
        self._buffer = bytearray()
        self._duration_sec = 0.0
        self._last_activity = self._time_fn()
        self.processing = ProcessingStateMachine()
        self.last_rejection: Optional[ErrorCode] = None

    @property
    def buffered_seconds(self) -> float:
        return self._duration_sec

    @property
    def buffered_bytes(self) -> int:
        return len(self._buffer)

    @property
    def last_activity(self) -> float:
        return self._last_activity

    def seconds_since_activity(self, now: Optional[float] = None) -> float:
        current = self._time_fn() if now is None else now
        return max(0.0, current - self._last_activity)

    def add_chunk(self, data: bytes) -> bool:
        """Append a chunk; returns False without touching state on rejection."""
        length = len(data)
        if length > self.limits.max_chunk_bytes:
            return self._reject(ErrorCode.AUDIO_CHUNK_TOO_LARGE, length)
        chunk_sec = length / self.limits.bytes_per_second
        if self._duration_sec + chunk_sec > self.limits.max_buffer_sec:
            return self._reject(ErrorCode.AUDIO_BUFFER_FULL, length)

        self._buffer.extend(data)
        self._duration_sec += chunk_sec
        self._last_activity = self._time_fn()
        self.last_rejection = None
        self._hooks.on_chunk_accepted(length)
        return True

    def should_process_batch(self, now: Optional[float] = None) -> bool:
        if self.processing.is_busy:
            return False
        if self._duration_sec >= self.limits.batch_size_sec:
            return True
        return (
            self._duration_sec >= self.limits.min_batch_sec
            and self.seconds_since_activity(now) > self.limits.stale_after_sec
        )

    def take_batch(self) -> bytes:
        """Remove up to one nominal batch of bytes from the front of the buffer."""
        size = min(self.limits.batch_bytes, len(self._buffer))
        batch = bytes(self._buffer[:size])
        del self._buffer[:size]
        self._duration_sec = max(0.0, self._duration_sec - self.limits.batch_size_sec)
        return batch

    def clear(self) -> None:
        self._buffer.clear()
        self._duration_sec = 0.0

    def _reject(self, code: ErrorCode, length: int) -> bool:
        self.last_rejection = code
        LOGGER.warning(
            "Audio chunk rejected code=%s bytes=%d buffered_sec=%.2f",
            code.value,
            length,
            self._duration_sec,
        )
        self._hooks.on_chunk_rejected(code)
        return False


__all__ = ["BufferLimits", "BufferSchedulerHooks", "SessionBufferScheduler"]
