"""Utility modules - common helpers and shared functionality."""

from .config import (
    ConfigLoader,
    ConfigError,
    get_config_loader,
    load_config,
    reset_config_loader,
)

__all__ = [
    'ConfigLoader',
    'ConfigError',
    'get_config_loader',
    'load_config',
    'reset_config_loader',
]
