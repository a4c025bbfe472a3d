"""Microphone capture with resampling and fixed-duration chunking."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union

import numpy as np

from caption_client.capture.resample import resample_linear
from caption_server.errors import AcquisitionError

LOGGER = logging.getLogger("caption_client.capture")

DEFAULT_TARGET_SAMPLE_RATE = 16000
DEFAULT_CHUNK_DURATION_MS = 3000
DEFAULT_BLOCK_SIZE = 2048

DeviceSpec = Union[int, str, None]


@dataclass(frozen=True)
class AudioChunk:
    """One fixed-size block of mono float32 samples at the target rate."""

    samples: np.ndarray
    sample_rate: int
    duration_ms: float

    def __len__(self) -> int:
        return int(self.samples.shape[0])


ChunkCallback = Callable[[AudioChunk], None]


def _default_stream_factory(**kwargs: Any) -> Any:
    try:
        import sounddevice as sd
    except OSError as exc:  # PortAudio library missing
        raise AcquisitionError(detail=f"PortAudio unavailable: {exc}") from exc
    try:
        return sd.InputStream(**kwargs)
    except sd.PortAudioError as exc:
        raise AcquisitionError(detail=f"Failed to open input device: {exc}") from exc


def _query_input_rate(device: DeviceSpec) -> int:
    try:
        import sounddevice as sd
    except OSError as exc:
        raise AcquisitionError(detail=f"PortAudio unavailable: {exc}") from exc
    try:
        info = sd.query_devices(device, "input")
    except (sd.PortAudioError, ValueError) as exc:
        raise AcquisitionError(detail=f"No usable input device: {exc}") from exc
    return int(info["default_samplerate"])


class AudioCaptureEngine:
    """Captures mono audio, converts it to the target rate and emits chunks.

    Chunks hold exactly ``chunk_samples`` samples. Audio left in the pending
    buffer when ``stop`` is called is discarded.
    """

    def __init__(
        self,
        sample_rate: int = DEFAULT_TARGET_SAMPLE_RATE,
        chunk_duration_ms: int = DEFAULT_CHUNK_DURATION_MS,
        device: DeviceSpec = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
        input_sample_rate: Optional[int] = None,
        stream_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._sample_rate = int(sample_rate)
        self._chunk_duration_ms = int(chunk_duration_ms)
        self.device = device
        self.block_size = int(block_size)
        self._configured_input_rate = input_sample_rate
        self._input_sample_rate = int(input_sample_rate or sample_rate)
        self._stream_factory = stream_factory
        self.chunk_samples = int(self._chunk_duration_ms / 1000 * self._sample_rate)
        self._stream: Any = None
        self._running = False
        self._callbacks: List[ChunkCallback] = []
        self._callbacks_lock = threading.Lock()
        self._pending_lock = threading.Lock()
        self._pending = np.zeros(self.chunk_samples * 4, dtype=np.float32)
        self._pending_length = 0

    @property
    def is_capturing(self) -> bool:
        return self._running

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def chunk_duration_ms(self) -> int:
        return self._chunk_duration_ms

    @property
    def input_sample_rate(self) -> int:
        return self._input_sample_rate

    @property
    def pending_samples(self) -> int:
        return self._pending_length

    def start(self) -> None:
        """Open the input device and begin delivering chunks.

        Raises ``AcquisitionError`` when no device can be opened.
        """
        if self._running:
            LOGGER.warning("Audio capture is already running")
            return
        try:
            self._input_sample_rate = self._resolve_input_rate()
            factory = self._stream_factory or _default_stream_factory
            self._stream = factory(
                samplerate=self._input_sample_rate,
                blocksize=self.block_size,
                channels=1,
                dtype="float32",
                device=self.device,
                callback=self._on_audio,
            )
            self._running = True
            self._stream.start()
        except AcquisitionError:
            self.stop()
            raise
        except (OSError, RuntimeError, ValueError) as exc:
            self.stop()
            raise AcquisitionError(detail=f"Failed to start audio capture: {exc}") from exc
        LOGGER.info(
            "Audio capture started input_rate=%d target_rate=%d chunk_ms=%d",
            self._input_sample_rate,
            self._sample_rate,
            self._chunk_duration_ms,
        )

    def stop(self) -> None:
        """Stop and release the stream; safe to call in any state."""
        self._running = False
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception:
                LOGGER.warning("Error while closing input stream", exc_info=True)
        with self._pending_lock:
            self._pending_length = 0

    def on_chunk(self, callback: ChunkCallback) -> Callable[[], None]:
        """Subscribe to emitted chunks; returns an unsubscribe function."""
        with self._callbacks_lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

        def unsubscribe() -> None:
            with self._callbacks_lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def process_block(self, samples) -> int:
        """Feed one block at the input rate; returns the number of chunks emitted."""
        resampled = resample_linear(samples, self._input_sample_rate, self._sample_rate)
        if resampled.shape[0] == 0:
            return 0
        with self._pending_lock:
            self._append(resampled)
            chunks = self._drain_ready_chunks()
        for chunk in chunks:
            self._deliver(chunk)
        return len(chunks)

    def _resolve_input_rate(self) -> int:
        if self._configured_input_rate:
            return int(self._configured_input_rate)
        if self._stream_factory is not None:
            return self._sample_rate
        return _query_input_rate(self.device)

    def _on_audio(self, indata, frames, time_info, status) -> None:
        if status:
            LOGGER.debug("Input stream status: %s", status)
        if not self._running:
            return
        self.process_block(indata[:frames, 0])

    def _append(self, samples: np.ndarray) -> None:
        needed = self._pending_length + samples.shape[0]
        if needed > self._pending.shape[0]:
            new_size = max(self._pending.shape[0] * 2, needed)
            grown = np.zeros(new_size, dtype=np.float32)
            grown[: self._pending_length] = self._pending[: self._pending_length]
            self._pending = grown
            LOGGER.warning("Audio buffer expanded to %d samples", new_size)
        self._pending[self._pending_length : needed] = samples
        self._pending_length = needed

    def _drain_ready_chunks(self) -> List[AudioChunk]:
        chunks: List[AudioChunk] = []
        size = self.chunk_samples
        if size <= 0:
            return chunks
        while self._pending_length >= size:
            data = self._pending[:size].copy()
            data.setflags(write=False)
            chunks.append(
                AudioChunk(
                    samples=data,
                    sample_rate=self._sample_rate,
                    duration_ms=size / self._sample_rate * 1000.0,
                )
            )
            remaining = self._pending_length - size
            if remaining > 0:
                self._pending[:remaining] = self._pending[size : self._pending_length]
            self._pending_length = remaining
        return chunks

    def _deliver(self, chunk: AudioChunk) -> None:
        with self._callbacks_lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(chunk)
            except Exception:
                LOGGER.exception("Chunk subscriber failed")


__all__ = ["AudioCaptureEngine", "AudioChunk", "ChunkCallback"]
