"""Audio capture: device input, resampling and fixed-duration chunking."""

from .engine import AudioCaptureEngine, AudioChunk, ChunkCallback
from .resample import resample_linear

__all__ = ["AudioCaptureEngine", "AudioChunk", "ChunkCallback", "resample_linear"]
