"""Transport layer helpers for the caption server."""

from .app import create_app, run_server
from .http_server import build_http_app
from .ws_server import build_ws_app

__all__ = [
    "build_http_app",
    "build_ws_app",
    "create_app",
    "run_server",
]
