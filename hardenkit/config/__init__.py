"""Configuration module for HardenKit.

This module provides YAML configuration parsing and validation for hardenkit.yaml.
"""

from hardenkit.config.settings import (
    CacheConfig,
    HardenKitConfig,
    ModesConfig,
    ProbeConfig,
    apply_env_overrides,
    load_config,
    parse_config,
)
from hardenkit.core.exceptions import ConfigError

__all__ = [
    "CacheConfig",
    "HardenKitConfig",
    "ModesConfig",
    "ProbeConfig",
    "ConfigError",
    "apply_env_overrides",
    "load_config",
    "parse_config",
]
