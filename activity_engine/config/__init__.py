"""Configuration management."""

from activity_engine.config.settings import (
    ConfigError,
    DEFAULT_CONFIG,
    get_section,
    load_config,
    validate_config,
)

__all__ = [
    'ConfigError',
    'DEFAULT_CONFIG',
    'get_section',
    'load_config',
    'validate_config',
]
