"""Configuration loader utilities."""

from .loader import DEFAULT_CONFIG_PATH, SECTION_MAP, ServerConfig, load_config

__all__ = [
    "ServerConfig",
    "DEFAULT_CONFIG_PATH",
    "SECTION_MAP",
    "load_config",
]
