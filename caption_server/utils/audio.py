"""PCM16 wire codec and WAV framing helpers."""

import struct

import librosa
import numpy as np

BYTES_PER_SAMPLE = 2  # PCM16
WAV_HEADER_BYTES = 44


def float32_to_pcm16(samples) -> np.ndarray:
    """float32 samples in [-1, 1] → int16 samples.

    Negative values scale by 0x8000 and non-negative values by 0x7FFF so both
    rails map exactly; fractional parts are truncated toward zero.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    return np.trunc(scaled).astype(np.int16)


def pcm16_to_bytes(pcm) -> bytes:
    """int16 samples → little-endian bytes."""
    return np.asarray(pcm, dtype="<i2").tobytes()


def bytes_to_pcm16(data: bytes) -> np.ndarray:
    """Little-endian bytes → int16 samples. A trailing odd byte is ignored."""
    usable = len(data) - (len(data) % BYTES_PER_SAMPLE)
    return np.frombuffer(data[:usable], dtype="<i2").astype(np.int16)


def float32_to_bytes(samples) -> bytes:
    """float32 samples → PCM16 wire bytes."""
    return pcm16_to_bytes(float32_to_pcm16(samples))


def pcm16_to_float32(pcm_bytes):
    """PCM16 bytes → float32 numpy array, the inverse of ``float32_to_pcm16``."""
    pcm = bytes_to_pcm16(pcm_bytes).astype(np.float32)
    return np.where(pcm < 0, pcm / 0x8000, pcm / 0x7FFF).astype(np.float32)


def ensure_16k(audio, src_rate):
    """Resample input audio to Whisper's required 16 kHz when needed."""
    if src_rate == 16000:
        return audio
    return librosa.resample(audio, orig_sr=src_rate, target_sr=16000)


def wav_header(
    data_len: int, sample_rate: int, channels: int = 1, bits_per_sample: int = 16
) -> bytes:
    """Build the canonical 44-byte RIFF/WAVE header for PCM payloads."""
    block_align = channels * bits_per_sample // 8
    byte_rate = sample_rate * block_align
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_len,
        b"WAVE",
        b"fmt ",
        16,
        1,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_len,
    )


def pcm16_to_wav(pcm: bytes, sample_rate: int, channels: int = 1) -> bytes:
    """Wrap raw PCM16 bytes in a WAV container; the payload is not modified."""
    return wav_header(len(pcm), sample_rate, channels) + bytes(pcm)


def bytes_per_second(sample_rate: int, channels: int = 1) -> int:
    return sample_rate * channels * BYTES_PER_SAMPLE


def chunk_duration_seconds(byte_length: int, sample_rate: int) -> float:
    """Return chunk duration given PCM16 byte length and sample rate."""
    if sample_rate <= 0:
        return 0.0
    samples = byte_length / BYTES_PER_SAMPLE
    return samples / float(sample_rate)


__all__ = [
    "BYTES_PER_SAMPLE",
    "WAV_HEADER_BYTES",
    "bytes_per_second",
    "bytes_to_pcm16",
    "chunk_duration_seconds",
    "ensure_16k",
    "float32_to_bytes",
    "float32_to_pcm16",
    "pcm16_to_bytes",
    "pcm16_to_float32",
    "pcm16_to_wav",
    "wav_header",
]
