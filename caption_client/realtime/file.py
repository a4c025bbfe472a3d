import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import Dict, List, Tuple

import numpy as np
import soundfile as sf

from caption_client.capture import AudioCaptureEngine, AudioChunk
from caption_client.realtime.mic import print_caption, print_error, print_status
from caption_client.sdk import RetryConfig, StreamingClient
from caption_server.errors import CaptionError

BLOCK_SIZE = 2048


def load_audio(filepath: str) -> Tuple[np.ndarray, int]:
    audio, sr = sf.read(filepath, dtype="float32")
    if audio.ndim > 1:
        audio = audio[:, 0]  # mono only
    return audio, int(sr)


def chunk_audio(
    audio: np.ndarray, sr: int, target_rate: int, chunk_ms: int
) -> List[AudioChunk]:
    """Run the file through the capture resampler/chunker block by block."""
    engine = AudioCaptureEngine(
        sample_rate=target_rate,
        chunk_duration_ms=chunk_ms,
        block_size=BLOCK_SIZE,
        input_sample_rate=sr,
    )
    chunks: List[AudioChunk] = []
    engine.on_chunk(chunks.append)
    for start in range(0, len(audio), BLOCK_SIZE):
        engine.process_block(audio[start : start + BLOCK_SIZE])
    return chunks


async def run(
    server: str,
    filepath: str,
    source_lang: str,
    target_lang: str,
    sample_rate: int,
    chunk_ms: int,
    speed: float,
    drain_sec: float,
    report_metrics: bool,
) -> None:
    audio, sr = load_audio(filepath)
    chunks = chunk_audio(audio, sr, sample_rate, chunk_ms)
    print(
        f"[FILE] {Path(filepath).name}: {len(audio) / sr:.2f}s at {sr} Hz -> "
        f"{len(chunks)} chunk(s) of {chunk_ms} ms"
    )

    stats: Dict[str, int] = {"chunks": 0, "captions": 0}
    client = StreamingClient(server, retry=RetryConfig(attempts=3))
    client.on_caption(print_caption)

    def count_caption(_caption) -> None:
        stats["captions"] += 1

    client.on_caption(count_caption)
    client.on_error(print_error)
    client.on_connection_status(print_status)
    await client.connect()

    start = time.perf_counter()
    try:
        session = await client.start_session(source_lang, target_lang)
        print(f"[SESSION] session_id={session.get('sessionId')}")
        pace = (chunk_ms / 1000.0) / speed if speed > 0 else 0.0
        for chunk in chunks:
            if not await client.send_audio_chunk(chunk.samples):
                break
            stats["chunks"] += 1
            print(f"[SEND] chunk_samples={len(chunk)}")
            if pace:
                await asyncio.sleep(pace)
        if drain_sec > 0:
            await asyncio.sleep(drain_sec)
        await client.stop_session()
    finally:
        await client.close()
        if report_metrics:
            wall = time.perf_counter() - start
            print(
                f"[METRIC] chunks={stats['chunks']} captions={stats['captions']} "
                f"wall_clock={wall:.2f}s"
            )


def main() -> None:
    parser = argparse.ArgumentParser(description="Live caption client (audio file)")
    parser.add_argument("file", help="Path to an audio file readable by soundfile")
    parser.add_argument(
        "--server",
        default="ws://localhost:3001/ws",
        help="Caption server WebSocket URL (default: %(default)s)",
    )
    parser.add_argument("--source-lang", default="en", help="Spoken language code")
    parser.add_argument(
        "--target-lang", default="none", help="Translation target, or 'none'"
    )
    parser.add_argument(
        "--chunk-ms",
        type=int,
        default=3000,
        help="Chunk size in milliseconds (default: %(default)s)",
    )
    parser.add_argument(
        "--sample-rate",
        type=int,
        default=16000,
        help="Sample rate sent to the server (default: %(default)s)",
    )
    parser.add_argument(
        "--speed",
        type=float,
        default=1.0,
        help="Playback pace multiplier; 0 sends as fast as possible",
    )
    parser.add_argument(
        "--drain",
        type=float,
        default=5.0,
        help="Seconds to wait for trailing captions before stopping",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Print chunk/caption counts and wall-clock duration on exit",
    )
    args = parser.parse_args()

    try:
        asyncio.run(
            run(
                server=args.server,
                filepath=args.file,
                source_lang=args.source_lang,
                target_lang=args.target_lang,
                sample_rate=args.sample_rate,
                chunk_ms=args.chunk_ms,
                speed=args.speed,
                drain_sec=args.drain,
                report_metrics=args.metrics,
            )
        )
    except KeyboardInterrupt:
        print("\n[STREAM] interrupted by user")
    except CaptionError as exc:
        print(f"[STREAM] terminated: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
