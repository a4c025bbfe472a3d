"""HTTP endpoints for health, server info, sessions and metrics."""

import logging
import re
from copy import deepcopy
from typing import Any, Dict, Iterable, List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from uvicorn.config import LOGGING_CONFIG

from caption_server import __version__
from caption_server.backend.application.session_store import utc_timestamp
from caption_server.backend.runtime import ApplicationRuntime
from caption_server.errors import CaptionError, http_payload_for, http_status_for

LOGGER = logging.getLogger("caption_server.http_server")

METRIC_PREFIX = "caption_"
_QUIET_PATHS = ("/health", "/metrics", "/metrics.json")
# Per-code maps in Metrics.render() exported as one labelled family each.
_LABELLED_COUNTERS = {"chunks_rejected": "code", "error_counts": "code"}
_INVALID_METRIC_CHARS = re.compile(r"[^a-zA-Z0-9_]")


class _QuietPathFilter(logging.Filter):
    """Drops uvicorn access records for health and metrics polling."""

    def __init__(self, paths: Iterable[str] = _QUIET_PATHS) -> None:
        super().__init__()
        self._paths = frozenset(paths)

    def filter(self, record: logging.LogRecord) -> bool:
        # uvicorn.access args: (client, method, path, http_version, status)
        args = record.args
        if not isinstance(args, tuple) or len(args) < 3:
            return True
        path = str(args[2]).split("?", 1)[0]
        return path not in self._paths


def build_uvicorn_log_config() -> Dict[str, Any]:
    """uvicorn's default logging config with the quiet-path filter attached."""
    log_config = deepcopy(LOGGING_CONFIG)
    log_config.setdefault("filters", {})["quiet_paths"] = {
        "()": _QuietPathFilter,
        "paths": _QUIET_PATHS,
    }
    access = log_config["handlers"].setdefault("access", {})
    access["filters"] = list(access.get("filters", [])) + ["quiet_paths"]
    return log_config


def _metric_name(key: str) -> str:
    name = _INVALID_METRIC_CHARS.sub("_", key)
    if not name or name[0].isdigit():
        name = f"m_{name}"
    return METRIC_PREFIX + name


def _family(name: str, kind: str, help_text: str) -> List[str]:
    return [f"# HELP {name} {help_text}", f"# TYPE {name} {kind}"]


def _histogram_lines(key: str, histogram: Dict[str, Any]) -> List[str]:
    name = _metric_name(key)
    lines = _family(name, "histogram", f"Distribution of {key}.")
    for bound, count in histogram.get("buckets", {}).items():
        lines.append(f'{name}_bucket{{le="{bound}"}} {count}')
    lines.append(f"{name}_sum {float(histogram.get('sum', 0.0))}")
    lines.append(f"{name}_count {int(histogram.get('count', 0))}")
    return lines


def prometheus_text(payload: Dict[str, Any]) -> str:
    """Render a ``Metrics.render()`` payload in the Prometheus text format.

    Keys ending in ``_total`` become counters, other numbers gauges. Per-code
    maps become one counter family with a ``code`` label and the histogram map
    becomes native histograms. Non-numeric values are skipped.
    """
    lines: List[str] = []
    for key in sorted(payload):
        value = payload[key]
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (int, float)):
            name = _metric_name(key)
            kind = "counter" if key.endswith("_total") else "gauge"
            lines.extend(_family(name, kind, f"Caption server metric {key}."))
            lines.append(f"{name} {float(value)}")
        elif key in _LABELLED_COUNTERS and isinstance(value, dict):
            name = _metric_name(key)
            label = _LABELLED_COUNTERS[key]
            lines.extend(_family(name, "counter", f"Caption server {key} by {label}."))
            for label_value in sorted(value):
                lines.append(f'{name}{{{label}="{label_value}"}} {float(value[label_value])}')
        elif key == "histograms" and isinstance(value, dict):
            for hist_key in sorted(value):
                lines.extend(_histogram_lines(hist_key, value[hist_key]))
    return "\n".join(lines) + "\n"


def build_http_app(
    runtime: ApplicationRuntime, app: Optional[FastAPI] = None
) -> FastAPI:
    """Attach the HTTP routes to ``app`` (or a new FastAPI app)."""
    app = app or FastAPI()
    metrics = runtime.metrics

    @app.exception_handler(CaptionError)
    async def caption_error_handler(_request: Request, exc: CaptionError) -> JSONResponse:
        return JSONResponse(
            http_payload_for(exc.code, exc.detail),
            status_code=http_status_for(exc.code),
        )

    @app.get("/health")
    def health_endpoint() -> JSONResponse:
        snapshot = runtime.health_snapshot()
        return JSONResponse({"status": "ok", "timestamp": utc_timestamp(), **snapshot})

    @app.get("/info")
    def info_endpoint() -> JSONResponse:
        config = runtime.config
        streaming = config.streaming
        return JSONResponse(
            {
                "name": "caption-server",
                "version": __version__,
                "audio": {
                    "sampleRate": streaming.sample_rate,
                    "channels": 1,
                    "encoding": "pcm_s16le",
                },
                "buffer": {
                    "batchSizeSec": streaming.batch_size_sec,
                    "minBatchSec": streaming.min_batch_sec,
                    "staleAfterSec": streaming.stale_after_sec,
                    "maxBufferSec": streaming.max_buffer_sec,
                    "maxChunkBytes": streaming.max_chunk_bytes,
                },
                "inactivityTimeoutSec": streaming.inactivity_timeout_sec,
                "providers": {
                    "stt": config.providers.stt_backend,
                    "translation": config.providers.translation_backend
                    if runtime.translation_provider is not None
                    else "none",
                },
                "supportedLanguages": runtime.supported_languages.as_list(),
            }
        )

    @app.get("/sessions")
    def sessions_endpoint() -> JSONResponse:
        sessions = runtime.session_store.snapshot()
        return JSONResponse({"count": len(sessions), "sessions": sessions})

    @app.get("/sessions/{session_id}")
    def session_detail_endpoint(session_id: str) -> JSONResponse:
        session = runtime.session_store.require(session_id)
        payload = session.summary()
        payload["captions"] = [caption.to_payload() for caption in session.captions]
        return JSONResponse(payload)

    @app.get("/metrics")
    def metrics_endpoint() -> Response:
        return Response(
            content=prometheus_text(metrics.render()),
            media_type="text/plain; version=0.0.4",
        )

    @app.get("/metrics.json")
    def metrics_json_endpoint() -> JSONResponse:
        return JSONResponse(metrics.render())

    return app


__all__ = ["build_http_app", "build_uvicorn_log_config", "prometheus_text"]
