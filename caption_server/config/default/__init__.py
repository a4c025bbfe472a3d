"""Default configuration values."""

from .provider import *  # noqa: F401,F403
from .provider import __all__ as _provider_all
from .server import *  # noqa: F401,F403
from .server import __all__ as _server_all

__all__ = [*_server_all, *_provider_all]
