"""Live caption server: buffered speech-to-text and translation over WebSocket."""

from pathlib import Path

__version__ = "0.1.0"

PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_DIR.parent

__all__ = ["PACKAGE_DIR", "PROJECT_ROOT", "__version__"]
