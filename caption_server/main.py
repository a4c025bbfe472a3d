import argparse
from pathlib import Path

from caption_server.backend.runtime import (
    ApplicationRuntime,
    CaptionRuntimeConfig,
    LanguageRuntimeConfig,
    ProviderRuntimeConfig,
    StreamingRuntimeConfig,
)
from caption_server.backend.transport import run_server
from caption_server.config import DEFAULT_CONFIG_PATH, ServerConfig, load_config
from caption_server.utils.logger import LOGGER, configure_logging


def build_runtime_config(config: ServerConfig) -> CaptionRuntimeConfig:
    providers = ProviderRuntimeConfig(
        stt_backend=config.stt_backend,
        model_size=config.model,
        device=config.device,
        compute_type=config.compute_type,
        openai_stt_model=config.openai_stt_model,
        translation_backend=config.translation_backend,
        openai_translation_model=config.openai_translation_model,
        libretranslate_url=config.libretranslate_url,
        openai_base_url=config.openai_base_url,
        temperature=float(config.provider_temperature),
        timeout_sec=float(config.provider_timeout_sec),
        openai_api_key=config.openai_api_key,
        libretranslate_api_key=config.libretranslate_api_key,
    )
    streaming = StreamingRuntimeConfig(
        sample_rate=int(config.sample_rate),
        batch_size_sec=float(config.batch_size_sec),
        min_batch_sec=float(config.min_batch_sec),
        stale_after_sec=float(config.stale_after_sec),
        max_buffer_sec=float(config.max_buffer_sec),
        max_chunk_bytes=int(config.max_chunk_bytes),
        inactivity_timeout_sec=float(config.inactivity_timeout_sec),
    )
    languages = LanguageRuntimeConfig(
        supported=dict(config.supported_languages),
        default_source=config.default_source_lang,
        default_target=config.default_target_lang,
    )
    return CaptionRuntimeConfig(
        providers=providers, streaming=streaming, languages=languages
    )


def serve(config: ServerConfig) -> None:
    """Launch the WebSocket + HTTP caption server."""
    runtime = ApplicationRuntime(build_runtime_config(config))
    LOGGER.info(
        "Caption server starting on %s:%s (ws=%s, stt=%s, translation=%s)",
        config.host,
        config.port,
        config.ws_path,
        config.stt_backend,
        config.translation_backend,
    )
    run_server(runtime, config.host, int(config.port), ws_path=config.ws_path)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live caption WebSocket server")
    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to YAML config (default search: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--host", default=None, help="Interface to bind")
    parser.add_argument("--port", type=int, default=None, help="Port to bind")
    parser.add_argument(
        "--stt-backend",
        default=None,
        help="Speech-to-text backend (faster_whisper, openai)",
    )
    parser.add_argument("--model", default=None, help="Whisper model size to load")
    parser.add_argument(
        "--device", default=None, help="Target device passed to faster-whisper"
    )
    parser.add_argument(
        "--compute-type", default=None, help="faster-whisper compute_type"
    )
    parser.add_argument(
        "--translation-backend",
        default=None,
        help="Translation backend (openai, libretranslate, none)",
    )
    parser.add_argument(
        "--libretranslate-url", default=None, help="LibreTranslate base URL"
    )
    parser.add_argument(
        "--batch-size",
        type=float,
        default=None,
        help="Seconds of buffered audio that trigger a batch",
    )
    parser.add_argument(
        "--stale-after",
        type=float,
        default=None,
        help="Idle seconds after which a short buffer is flushed",
    )
    parser.add_argument(
        "--max-buffer",
        type=float,
        default=None,
        help="Maximum seconds of audio buffered per session",
    )
    parser.add_argument(
        "--inactivity-timeout",
        type=float,
        default=None,
        help="Seconds without audio before a session is cleaned up (<=0 disables)",
    )
    parser.add_argument(
        "--default-target",
        default=None,
        help="Target language used when a client omits or sends an unknown one",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, TRACE); overrides config",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional log file path; overrides config",
    )
    parser.add_argument(
        "--transcript-log-file",
        default=None,
        help="Opt-in file that receives caption text; never mixed into the main log",
    )
    return parser.parse_args()


def configure_from_args(args: argparse.Namespace) -> ServerConfig:
    config_arg_path = Path(args.config).expanduser() if args.config else None
    effective_config_path = config_arg_path or DEFAULT_CONFIG_PATH
    config = load_config(effective_config_path)

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.stt_backend is not None:
        config.stt_backend = args.stt_backend
    if args.model is not None:
        config.model = args.model
    if args.device is not None:
        config.device = args.device
    if args.compute_type is not None:
        config.compute_type = args.compute_type
    if args.translation_backend is not None:
        config.translation_backend = args.translation_backend
    if args.libretranslate_url is not None:
        config.libretranslate_url = args.libretranslate_url
    if args.batch_size is not None:
        config.batch_size_sec = args.batch_size
    if args.stale_after is not None:
        config.stale_after_sec = args.stale_after
    if args.max_buffer is not None:
        config.max_buffer_sec = args.max_buffer
    if args.inactivity_timeout is not None:
        config.inactivity_timeout_sec = args.inactivity_timeout
    if args.default_target is not None:
        config.default_target_lang = args.default_target
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_file is not None:
        config.log_file = args.log_file
    if args.transcript_log_file is not None:
        config.transcript_log_file = args.transcript_log_file

    configure_logging(config.log_level, config.log_file, config.transcript_log_file)
    if effective_config_path.exists():
        LOGGER.info("Loaded server config from %s", effective_config_path)
    else:
        LOGGER.info(
            "Server config file not found at %s; using defaults/CLI overrides",
            effective_config_path,
        )
    if not config.openai_api_key and "openai" in {
        config.stt_backend.lower(),
        config.translation_backend.lower(),
    }:
        LOGGER.warning("OPENAI_API_KEY is not set; OpenAI providers will fail to start")
    return config


def main() -> None:
    args = parse_args()
    config = configure_from_args(args)
    serve(config)


if __name__ == "__main__":
    main()
