"""Asynchronous WebSocket client SDK for the caption server."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np
import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from caption_server.errors import CaptionError, ErrorCode
from caption_server.utils.audio import float32_to_bytes, pcm16_to_bytes

LOGGER = logging.getLogger("caption_client.sdk")

DEFAULT_SERVER_URL = "ws://localhost:3001/ws"

AudioPayload = Union[bytes, bytearray, memoryview, np.ndarray]


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for establishing the connection."""

    attempts: int = 10
    base_backoff_sec: float = 1.0
    max_backoff_sec: float = 5.0


@dataclass(frozen=True)
class CaptionUpdate:
    original: str
    translated: str
    source_lang: str
    target_lang: str
    is_final: bool
    stt_latency: Optional[float]
    translation_latency: Optional[float]
    timestamp: str

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CaptionUpdate":
        original = str(data.get("original", ""))
        return cls(
            original=original,
            translated=str(data.get("translated", original)),
            source_lang=str(data.get("sourceLang", "")),
            target_lang=str(data.get("targetLang", "")),
            is_final=bool(data.get("isFinal", True)),
            stt_latency=data.get("sttLatency"),
            translation_latency=data.get("translationLatency"),
            timestamp=str(data.get("timestamp", "")),
        )


def _backoff_delay(retry: RetryConfig, attempt: int) -> float:
    base = max(0.0, retry.base_backoff_sec)
    delay = min(retry.max_backoff_sec, base * (2**attempt))
    jitter = delay * 0.2
    return max(0.0, delay + random.uniform(-jitter, jitter))


def _error_code(value: Any) -> ErrorCode:
    try:
        return ErrorCode(value)
    except ValueError:
        return ErrorCode.PIPELINE_UNEXPECTED


def encode_audio(chunk: AudioPayload) -> bytes:
    """Convert an audio chunk to the PCM16 little-endian wire format."""
    if isinstance(chunk, np.ndarray):
        if chunk.dtype == np.int16:
            return pcm16_to_bytes(chunk)
        return float32_to_bytes(chunk)
    return bytes(chunk)


class _Subscribers:
    def __init__(self) -> None:
        self._callbacks: List[Callable[[Any], None]] = []

    def add(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def notify(self, value: Any) -> None:
        for callback in list(self._callbacks):
            try:
                callback(value)
            except Exception:
                LOGGER.exception("Subscriber callback failed")


class StreamingClient:
    """Streams PCM16 audio to the caption server and receives captions.

    Control messages are acknowledged by the server; the client correlates
    replies through the ``ack`` counter carried in each envelope.
    """

    def __init__(
        self,
        server_url: str = DEFAULT_SERVER_URL,
        *,
        retry: Optional[RetryConfig] = None,
        ack_timeout_sec: float = 10.0,
        max_message_bytes: Optional[int] = 16 * 1024 * 1024,
        connector: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.server_url = server_url
        self._retry = retry or RetryConfig()
        self._ack_timeout_sec = ack_timeout_sec
        self._max_message_bytes = max_message_bytes
        self._connector = connector or websockets.connect
        self._ws: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._next_ack = 0
        self._status = ConnectionStatus.DISCONNECTED
        self._session_active = False
        self._session_config: Optional[Dict[str, str]] = None
        self._caption_subscribers = _Subscribers()
        self._error_subscribers = _Subscribers()
        self._status_subscribers = _Subscribers()

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED

    @property
    def is_session_active(self) -> bool:
        return self._session_active

    @property
    def session_config(self) -> Optional[Dict[str, str]]:
        return dict(self._session_config) if self._session_config else None

    def on_caption(self, callback: Callable[[CaptionUpdate], None]) -> Callable[[], None]:
        return self._caption_subscribers.add(callback)

    def on_error(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self._error_subscribers.add(callback)

    def on_connection_status(
        self, callback: Callable[[ConnectionStatus], None]
    ) -> Callable[[], None]:
        return self._status_subscribers.add(callback)

    async def connect(self) -> None:
        """Open the socket, retrying with jittered exponential backoff."""
        if self._ws is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._set_status(ConnectionStatus.CONNECTING)
        attempt = 0
        while True:
            try:
                self._ws = await self._connector(
                    self.server_url, max_size=self._max_message_bytes
                )
                break
            except (OSError, InvalidHandshake) as exc:
                self._error_subscribers.notify(str(exc))
                if attempt >= max(0, self._retry.attempts):
                    self._set_status(ConnectionStatus.DISCONNECTED)
                    raise
                delay = _backoff_delay(self._retry, attempt)
                LOGGER.warning(
                    "Connect to %s failed (%s); retrying in %.2fs",
                    self.server_url,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)
                attempt += 1
        self._set_status(ConnectionStatus.CONNECTED)
        self._reader = asyncio.create_task(self._read_loop(self._ws))
        LOGGER.info("Connected to %s", self.server_url)

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        self._session_active = False
        self._session_config = None
        if ws is not None:
            await ws.close()
        if self._reader is not None:
            await self._reader
            self._reader = None
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def start_session(self, source_lang: str, target_lang: str) -> Dict[str, Any]:
        """Start a caption session; raises ``CaptionError`` when refused."""
        config = {"sourceLang": source_lang, "targetLang": target_lang}
        response = await self._request("session.start", config)
        if not response.get("success"):
            raise CaptionError(
                _error_code(response.get("code")),
                response.get("error") or "Failed to start session",
            )
        self._session_active = True
        self._session_config = {
            "sourceLang": str(response.get("sourceLang", source_lang)),
            "targetLang": str(response.get("targetLang", target_lang)),
        }
        return response

    async def stop_session(self) -> Optional[Dict[str, Any]]:
        if not self.is_connected:
            return None
        response = await self._request("session.stop", {})
        self._session_active = False
        self._session_config = None
        return response

    async def update_settings(
        self, source_lang: Optional[str] = None, target_lang: Optional[str] = None
    ) -> Dict[str, Any]:
        data: Dict[str, str] = {}
        if source_lang is not None:
            data["sourceLang"] = source_lang
        if target_lang is not None:
            data["targetLang"] = target_lang
        response = await self._request("settings.update", data)
        if response.get("success"):
            self._session_config = {
                "sourceLang": str(response.get("sourceLang", "")),
                "targetLang": str(response.get("targetLang", "")),
            }
        return response

    async def send_audio_chunk(self, chunk: AudioPayload) -> bool:
        """Send one chunk as a binary frame; returns False when dropped."""
        if not self.is_connected or self._ws is None:
            LOGGER.warning("Not connected; audio chunk dropped")
            return False
        try:
            await self._ws.send(encode_audio(chunk))
        except ConnectionClosed:
            LOGGER.warning("Connection closed; audio chunk dropped")
            return False
        return True

    def send_audio_chunk_threadsafe(self, chunk: AudioPayload) -> Optional[Future]:
        """Schedule ``send_audio_chunk`` from a non-loop thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            LOGGER.warning("Client loop not running; audio chunk dropped")
            return None
        return asyncio.run_coroutine_threadsafe(self.send_audio_chunk(chunk), loop)

    async def _request(self, event: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_connected or self._ws is None:
            raise ConnectionError("Not connected to server")
        self._next_ack += 1
        ack_id = self._next_ack
        future = asyncio.get_running_loop().create_future()
        self._pending[ack_id] = future
        try:
            await self._ws.send(json.dumps({"event": event, "ack": ack_id, "data": data}))
            return await asyncio.wait_for(future, timeout=self._ack_timeout_sec)
        finally:
            self._pending.pop(ack_id, None)

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                if isinstance(raw, (bytes, bytearray)):
                    continue
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    LOGGER.warning("Ignoring malformed server message")
                    continue
                if isinstance(message, dict):
                    self._dispatch(message)
        except ConnectionClosed as exc:
            LOGGER.info("Connection closed: %s", exc)
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(ConnectionError("Connection closed"))
            self._pending.clear()
            if self._ws is ws:
                self._ws = None
            self._session_active = False
            self._set_status(ConnectionStatus.DISCONNECTED)

    def _dispatch(self, message: Dict[str, Any]) -> None:
        event = message.get("event")
        data = message.get("data")
        if event == "ack":
            future = self._pending.get(message.get("ack"))
            if future is not None and not future.done():
                future.set_result(data if isinstance(data, dict) else {})
            elif isinstance(data, dict) and not data.get("success", True):
                self._error_subscribers.notify(str(data.get("error", "")))
        elif event == "audio.ack":
            if isinstance(data, dict) and not data.get("success"):
                LOGGER.debug("Audio chunk rejected: %s", data.get("error"))
                self._error_subscribers.notify(str(data.get("error", "")))
        elif event == "caption.update":
            if isinstance(data, dict):
                self._caption_subscribers.notify(CaptionUpdate.from_payload(data))
        elif event == "caption.error":
            error = data.get("error") if isinstance(data, dict) else data
            self._error_subscribers.notify(str(error))
        else:
            LOGGER.debug("Ignoring server event '%s'", event)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        self._status = status
        self._status_subscribers.notify(status)


__all__ = [
    "CaptionUpdate",
    "ConnectionStatus",
    "DEFAULT_SERVER_URL",
    "RetryConfig",
    "StreamingClient",
    "encode_audio",
]
