"""
Configuration module for ivfann.

This module provides configuration management including
loading settings from YAML files and environment variables.

Example:
    >>> from config import Settings, load_config
    >>>
    >>> # Load default config
    >>> settings = load_config()
    >>>
    >>> # Build the configured index
    >>> index = settings.create_index()
    >>> index.build(vectors)
"""

from .settings import (
    Settings,
    LloydConfig,
    MiniBatchConfig,
    HierarchicalConfig,
    CONFIG_ENV_VAR,
    load_config,
    get_default_config_path,
)

__all__ = [
    "Settings",
    "LloydConfig",
    "MiniBatchConfig",
    "HierarchicalConfig",
    "CONFIG_ENV_VAR",
    "load_config",
    "get_default_config_path",
]
