"""Centralized error codes and status mappings."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Final, Optional


class ErrorCode(str, Enum):
    """Stable error identifiers surfaced to clients and logs."""

    # session (ERR100x)
    SESSION_NOT_FOUND = "ERR1001"
    AUDIO_CHUNK_TOO_LARGE = "ERR1003"
    AUDIO_BUFFER_FULL = "ERR1004"
    MESSAGE_INVALID = "ERR1006"

    # pipeline (ERR200x)
    TRANSCRIPTION_FAILED = "ERR2001"
    TRANSLATION_FAILED = "ERR2002"
    PROVIDER_NOT_CONFIGURED = "ERR2003"
    INVALID_TRANSITION = "ERR2004"

    # capture (ERR300x)
    AUDIO_ACQUISITION_FAILED = "ERR3001"

    # internal (ERR900x)
    PIPELINE_UNEXPECTED = "ERR9001"


@dataclass(frozen=True)
class ErrorSpec:
    """Maps an error code to an HTTP status and message."""

    code: ErrorCode
    http_status: int
    message: str


ERROR_SPECS: Final[dict[ErrorCode, ErrorSpec]] = {
    ErrorCode.SESSION_NOT_FOUND: ErrorSpec(
        ErrorCode.SESSION_NOT_FOUND, 404, "No active session"
    ),
    ErrorCode.AUDIO_CHUNK_TOO_LARGE: ErrorSpec(
        ErrorCode.AUDIO_CHUNK_TOO_LARGE, 413, "Audio chunk exceeds maximum size"
    ),
    ErrorCode.AUDIO_BUFFER_FULL: ErrorSpec(
        ErrorCode.AUDIO_BUFFER_FULL, 429, "Buffer full, chunk rejected"
    ),
    ErrorCode.MESSAGE_INVALID: ErrorSpec(
        ErrorCode.MESSAGE_INVALID, 400, "Malformed message"
    ),
    ErrorCode.TRANSCRIPTION_FAILED: ErrorSpec(
        ErrorCode.TRANSCRIPTION_FAILED, 502, "Transcription failed"
    ),
    ErrorCode.TRANSLATION_FAILED: ErrorSpec(
        ErrorCode.TRANSLATION_FAILED, 502, "Translation failed"
    ),
    ErrorCode.PROVIDER_NOT_CONFIGURED: ErrorSpec(
        ErrorCode.PROVIDER_NOT_CONFIGURED, 503, "Provider is not configured"
    ),
    ErrorCode.INVALID_TRANSITION: ErrorSpec(
        ErrorCode.INVALID_TRANSITION, 409, "Invalid processing state transition"
    ),
    ErrorCode.AUDIO_ACQUISITION_FAILED: ErrorSpec(
        ErrorCode.AUDIO_ACQUISITION_FAILED, 500, "Failed to start audio capture"
    ),
    ErrorCode.PIPELINE_UNEXPECTED: ErrorSpec(
        ErrorCode.PIPELINE_UNEXPECTED, 500, "Unexpected pipeline error"
    ),
}


def http_status_for(code: ErrorCode) -> int:
    """Return the HTTP status associated with an error code."""
    return ERROR_SPECS[code].http_status


def format_error(code: ErrorCode, detail: Optional[str] = None) -> str:
    """Format an error code and optional detail into a message."""
    spec = ERROR_SPECS[code]
    message = detail if detail else spec.message
    return f"{spec.code.value} {message}"


def http_payload_for(code: ErrorCode, detail: Optional[str] = None) -> dict[str, str]:
    """Build an HTTP error payload for a given error code."""
    spec = ERROR_SPECS[code]
    message = detail if detail else spec.message
    return {"code": spec.code.value, "message": message}


def ack_payload_for(code: ErrorCode, detail: Optional[str] = None) -> Dict[str, Any]:
    """Build a failed acknowledgment payload for the socket protocol."""
    spec = ERROR_SPECS[code]
    return {
        "success": False,
        "error": detail if detail else spec.message,
        "code": spec.code.value,
    }


class CaptionError(RuntimeError):
    """Raised for application-defined errors with status metadata."""

    default_code: ErrorCode = ErrorCode.PIPELINE_UNEXPECTED

    def __init__(
        self, code: Optional[ErrorCode] = None, detail: Optional[str] = None
    ) -> None:
        """Create a CaptionError with formatted message and status metadata."""
        self.code = code or self.default_code
        self.http_status = http_status_for(self.code)
        self.detail = detail or ERROR_SPECS[self.code].message
        super().__init__(format_error(self.code, detail))

    def ack_payload(self) -> Dict[str, Any]:
        return ack_payload_for(self.code, self.detail)


class AcquisitionError(CaptionError):
    """Microphone missing, permission denied, or audio device unavailable."""

    default_code = ErrorCode.AUDIO_ACQUISITION_FAILED


class BufferOverflowError(CaptionError):
    """A chunk was rejected by the per-session buffer limits."""

    default_code = ErrorCode.AUDIO_BUFFER_FULL


class TranscriptionError(CaptionError):
    default_code = ErrorCode.TRANSCRIPTION_FAILED


class TranslationError(CaptionError):
    default_code = ErrorCode.TRANSLATION_FAILED


class SessionNotFoundError(CaptionError):
    default_code = ErrorCode.SESSION_NOT_FOUND


class InvalidTransitionError(CaptionError):
    """Processing state machine refused a transition."""

    default_code = ErrorCode.INVALID_TRANSITION


__all__ = [
    "AcquisitionError",
    "BufferOverflowError",
    "CaptionError",
    "ERROR_SPECS",
    "ErrorCode",
    "ErrorSpec",
    "InvalidTransitionError",
    "SessionNotFoundError",
    "TranscriptionError",
    "TranslationError",
    "ack_payload_for",
    "format_error",
    "http_payload_for",
    "http_status_for",
]
