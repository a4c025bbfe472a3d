"""Combined FastAPI application and uvicorn launcher."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI

from caption_server.backend.runtime import ApplicationRuntime
from caption_server.backend.transport.http_server import (
    build_http_app,
    build_uvicorn_log_config,
)
from caption_server.backend.transport.ws_server import build_ws_app
from caption_server.config.default import DEFAULT_WS_PATH


def create_app(runtime: ApplicationRuntime, ws_path: str = DEFAULT_WS_PATH) -> FastAPI:
    """One app serves the WebSocket stream and the HTTP routes on one loop."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        await runtime.shutdown()

    app = FastAPI(title="Live Caption Server", lifespan=lifespan)
    build_http_app(runtime, app)
    build_ws_app(runtime, app, path=ws_path)
    return app


def run_server(
    runtime: ApplicationRuntime, host: str, port: int, ws_path: str = DEFAULT_WS_PATH
) -> None:
    """Run the app in the foreground until interrupted."""
    app = create_app(runtime, ws_path)
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
        log_config=build_uvicorn_log_config(),
    )
    uvicorn.Server(config).run()


__all__ = ["create_app", "run_server"]
