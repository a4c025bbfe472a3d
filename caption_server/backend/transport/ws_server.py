"""WebSocket endpoint for caption streaming clients."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from caption_server.backend.application.session_handler import SessionHandler
from caption_server.backend.runtime import ApplicationRuntime
from caption_server.config.default import DEFAULT_WS_PATH
from caption_server.errors import ErrorCode, ack_payload_for
from caption_server.utils.logger import clear_session_id, set_session_id

LOGGER = logging.getLogger("caption_server.ws_server")

ACK_EVENT = "ack"
AUDIO_ACK_EVENT = "audio.ack"


def _parse_envelope(text: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("event"), str):
        return None
    return data


class _ConnectionSender:
    """Serializes writes to one socket; sends after close are dropped."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._lock = asyncio.Lock()
        self.closed = False

    async def send(self, message: Dict[str, Any]) -> None:
        if self.closed:
            return
        async with self._lock:
            try:
                await self._websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                self.closed = True

    async def emit(self, event: str, data: Dict[str, Any]) -> None:
        await self.send({"event": event, "data": data})


def build_ws_app(
    runtime: ApplicationRuntime,
    app: Optional[FastAPI] = None,
    path: str = DEFAULT_WS_PATH,
) -> FastAPI:
    app = app or FastAPI()
    metrics = runtime.metrics

    @app.websocket(path)
    async def caption_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        sender = _ConnectionSender(websocket)
        handler = SessionHandler(connection_id, runtime, sender.emit)
        set_session_id(connection_id)
        LOGGER.info("Client connected")
        try:
            while True:
                message = await websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    break
                if message.get("bytes") is not None:
                    ack = handler.add_audio(message["bytes"])
                    if not ack.get("success"):
                        metrics.record_error(ack.get("code", ""))
                    await sender.send({"event": AUDIO_ACK_EVENT, "data": ack})
                    continue
                text = message.get("text")
                if text is None:
                    continue
                envelope = _parse_envelope(text)
                if envelope is None:
                    metrics.record_error(ErrorCode.MESSAGE_INVALID.value)
                    await sender.send(
                        {
                            "event": ACK_EVENT,
                            "ack": None,
                            "data": ack_payload_for(ErrorCode.MESSAGE_INVALID),
                        }
                    )
                    continue
                response = handler.handle_event(
                    envelope["event"], envelope.get("data")
                )
                await sender.send(
                    {"event": ACK_EVENT, "ack": envelope.get("ack"), "data": response}
                )
        except WebSocketDisconnect:
            pass
        finally:
            sender.closed = True
            handler.disconnect()
            LOGGER.info("Client disconnected")
            clear_session_id()

    return app


__all__ = ["ACK_EVENT", "AUDIO_ACK_EVENT", "build_ws_app"]
