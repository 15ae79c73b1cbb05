"""Core configuration for Hookgate."""

from hookgate.core.config import (
    HookgateConfig,
    clear_config,
    flatten_config,
    get_config,
    load_config_from_file,
)

__all__ = [
    "HookgateConfig",
    "clear_config",
    "flatten_config",
    "get_config",
    "load_config_from_file",
]
