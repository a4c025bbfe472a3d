import contextvars
import logging
import logging.handlers
import queue
from pathlib import Path
from typing import List, Optional

# Custom TRACE level below DEBUG.
TRACE_LEVEL_NUM = 5
logging.addLevelName(TRACE_LEVEL_NUM, "TRACE")


def trace(self: logging.Logger, message: str, *args, **kwargs) -> None:
    """Logger helper for TRACE level."""
    if self.isEnabledFor(TRACE_LEVEL_NUM):
        self._log(TRACE_LEVEL_NUM, message, args, **kwargs)


logging.Logger.trace = trace  # type: ignore

_SESSION_ID: contextvars.ContextVar[str] = contextvars.ContextVar(
    "caption_session_id", default="-"
)

LOG_QUEUE: "queue.Queue[logging.LogRecord]" = queue.Queue()
QUEUE_LISTENER: Optional[logging.handlers.QueueListener] = None
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s session_id=%(session_id)s: %(message)s"


class SessionIdFilter(logging.Filter):
    """Stamp the current session id onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session_id"):
            record.session_id = _SESSION_ID.get()
        return True


def set_session_id(session_id: str) -> None:
    _SESSION_ID.set(session_id or "-")


def clear_session_id() -> None:
    _SESSION_ID.set("-")


def _file_handler(path: str, formatter: logging.Formatter) -> logging.FileHandler:
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(target)
    handler.setFormatter(formatter)
    return handler


def _resolve_level(level: str) -> int:
    name = level.upper()
    if name == "TRACE":
        return TRACE_LEVEL_NUM
    value = getattr(logging, name, None)
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    level: str,
    log_file: Optional[str],
    transcript_log_file: Optional[str] = None,
) -> None:
    """Route root logging through a queue listener and set up the caption sink.

    Caption text goes to ``TRANSCRIPT_LOGGER``, which never propagates to the
    root handlers; it only writes when ``transcript_log_file`` is given.
    """
    global QUEUE_LISTENER
    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    sinks: List[logging.Handler] = [console]
    if log_file:
        sinks.append(_file_handler(log_file, formatter))

    # Filter on the producing thread so the context var is visible.
    producer = logging.handlers.QueueHandler(LOG_QUEUE)
    producer.addFilter(SessionIdFilter())
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(_resolve_level(level))
    root.addHandler(producer)

    if QUEUE_LISTENER:
        QUEUE_LISTENER.stop()
    QUEUE_LISTENER = logging.handlers.QueueListener(
        LOG_QUEUE, *sinks, respect_handler_level=True
    )
    QUEUE_LISTENER.start()

    for stale in TRANSCRIPT_LOGGER.handlers:
        stale.close()
    TRANSCRIPT_LOGGER.handlers.clear()
    if not transcript_log_file:
        TRANSCRIPT_LOGGER.addHandler(logging.NullHandler())
        return
    transcript_handler = _file_handler(transcript_log_file, formatter)
    transcript_handler.addFilter(SessionIdFilter())
    TRANSCRIPT_LOGGER.addHandler(transcript_handler)


LOGGER = logging.getLogger("caption_server")
TRANSCRIPT_LOGGER = logging.getLogger("caption_server.transcript")
TRANSCRIPT_LOGGER.propagate = False
TRANSCRIPT_LOGGER.setLevel(logging.INFO)

__all__ = [
    "configure_logging",
    "clear_session_id",
    "set_session_id",
    "LOGGER",
    "TRANSCRIPT_LOGGER",
    "TRACE_LEVEL_NUM",
]
