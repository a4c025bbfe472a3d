import argparse
import asyncio
import sys
import time
from typing import Optional

from caption_client.capture import AudioCaptureEngine, AudioChunk
from caption_client.sdk import (
    CaptionUpdate,
    ConnectionStatus,
    RetryConfig,
    StreamingClient,
)
from caption_server.errors import CaptionError


def print_caption(caption: CaptionUpdate) -> None:
    latency = f"stt={caption.stt_latency}ms"
    if caption.translation_latency is not None:
        latency += f" translation={caption.translation_latency}ms"
    print(f"[CAPTION] [{caption.source_lang}] {caption.original} ({latency})")
    if caption.target_lang != "none":
        print(f"[CAPTION] [{caption.target_lang}] {caption.translated}")


def print_error(message: str) -> None:
    print(f"[ERROR] {message}", file=sys.stderr)


def print_status(status: ConnectionStatus) -> None:
    print(f"[STATUS] {status.value}")


async def run(
    server: str,
    source_lang: str,
    target_lang: str,
    sample_rate: int,
    chunk_ms: int,
    input_device: Optional[str],
    report_metrics: bool,
) -> None:
    client = StreamingClient(server, retry=RetryConfig(attempts=3))
    client.on_caption(print_caption)
    client.on_error(print_error)
    client.on_connection_status(print_status)
    await client.connect()

    session = await client.start_session(source_lang, target_lang)
    print(
        f"[SESSION] session_id={session.get('sessionId')} "
        f"{session.get('sourceLang')} -> {session.get('targetLang')}"
    )

    engine = AudioCaptureEngine(
        sample_rate=sample_rate, chunk_duration_ms=chunk_ms, device=input_device
    )
    stats = {"chunks": 0}

    def forward(chunk: AudioChunk) -> None:
        stats["chunks"] += 1
        client.send_audio_chunk_threadsafe(chunk.samples)

    engine.on_chunk(forward)
    start = time.perf_counter()
    engine.start()
    print(
        f"[STREAM] microphone streaming at {engine.input_sample_rate} Hz -> "
        f"{sample_rate} Hz ({chunk_ms} ms chunks). Press Ctrl+C to stop."
    )
    try:
        while client.is_connected:
            await asyncio.sleep(0.5)
        print("[STREAM] server closed the connection", file=sys.stderr)
    finally:
        engine.stop()
        if client.is_connected:
            await client.stop_session()
        await client.close()
        if report_metrics:
            wall = time.perf_counter() - start
            audio = stats["chunks"] * chunk_ms / 1000.0
            print(
                f"[METRIC] chunks={stats['chunks']} audio_duration={audio:.2f}s "
                f"wall_clock={wall:.2f}s"
            )


def main() -> None:
    parser = argparse.ArgumentParser(description="Live caption client (microphone)")
    parser.add_argument(
        "--server",
        default="ws://localhost:3001/ws",
        help="Caption server WebSocket URL (default: %(default)s)",
    )
    parser.add_argument(
        "--source-lang",
        default="en",
        help="Spoken language code (default: %(default)s)",
    )
    parser.add_argument(
        "--target-lang",
        default="none",
        help="Caption translation target, or 'none' (default: %(default)s)",
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
        "--device",
        default=None,
        help="Input device name/index (defaults to system mic)",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Print chunk count and wall-clock duration on exit",
    )
    args = parser.parse_args()

    try:
        asyncio.run(
            run(
                server=args.server,
                source_lang=args.source_lang,
                target_lang=args.target_lang,
                sample_rate=args.sample_rate,
                chunk_ms=args.chunk_ms,
                input_device=args.device,
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
