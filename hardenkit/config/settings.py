"""YAML configuration parser for HardenKit.

This module provides parsing and validation for hardenkit.yaml configuration files.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from hardenkit.core.exceptions import ConfigError
from hardenkit.rules.model import Modes

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "hardenkit.yaml"
DEFAULT_CACHE_PATH = ".hardenkit/probe-cache.json"

ENV_HARDENING_FULL = "HARDENKIT_HARDENING_FULL"
ENV_IPO_THIN = "HARDENKIT_IPO_THIN"

_TRUE_VALUES = {"1", "on", "true", "yes"}
_FALSE_VALUES = {"0", "off", "false", "no", ""}


@dataclass
class ModesConfig:
    """Mode toggles (ENABLE_HARDENING_FULL / ENABLE_IPO_THIN)."""

    hardening_full: bool = False
    ipo_thin: bool = False

    def to_modes(self) -> Modes:
        return Modes(hardening_full=self.hardening_full, ipo_thin=self.ipo_thin)


@dataclass
class CacheConfig:
    """Probe cache configuration."""

    enabled: bool = True
    path: Optional[Path] = None  # resolved against the config file directory
    lock_timeout: int = 30


@dataclass
class ProbeConfig:
    """Trial compile configuration."""

    compiler: str = "c++"
    timeout: int = 30  # seconds per trial


@dataclass
class HardenKitConfig:
    """Complete HardenKit configuration."""

    version: int = 1
    modes: ModesConfig = field(default_factory=ModesConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    source: Optional[Path] = None


def parse_config(config_path: Path) -> HardenKitConfig:
    """
    Parse hardenkit.yaml configuration file.

    Args:
        config_path: Path to hardenkit.yaml

    Returns:
        Parsed and validated configuration

    Raises:
        ConfigError: If configuration is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")

    config = _parse_and_validate(data, config_path.parent)
    config.source = config_path
    return config


def load_config(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> HardenKitConfig:
    """
    Load configuration, falling back to defaults.

    Looks for ``hardenkit.yaml`` in the current directory when no path is
    given. Environment overrides are applied last.

    Args:
        config_path: Explicit configuration file (must exist)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Configuration with environment overrides applied

    Raises:
        ConfigError: If an explicit or discovered file is invalid
    """
    if config_path is not None:
        config = parse_config(Path(config_path))
    elif Path(CONFIG_FILENAME).exists():
        config = parse_config(Path(CONFIG_FILENAME))
    else:
        logger.debug(f"No {CONFIG_FILENAME} found, using defaults")
        config = HardenKitConfig()
        config.cache.path = Path(DEFAULT_CACHE_PATH).resolve()

    apply_env_overrides(config, os.environ if environ is None else environ)
    return config


def apply_env_overrides(config: HardenKitConfig, environ: Mapping[str, str]) -> None:
    """Apply HARDENKIT_* environment variables to the mode toggles."""
    overrides = ((ENV_HARDENING_FULL, "hardening_full"), (ENV_IPO_THIN, "ipo_thin"))
    for name, attr in overrides:
        if name not in environ:
            continue
        value = environ[name].strip().lower()
        if value in _TRUE_VALUES:
            setattr(config.modes, attr, True)
        elif value in _FALSE_VALUES:
            setattr(config.modes, attr, False)
        else:
            raise ConfigError(f"{name} must be one of 1/on/true/yes or 0/off/false/no")
        logger.debug(f"{name} overrides modes.{attr} = {getattr(config.modes, attr)}")


def _parse_and_validate(data: dict, base_dir: Path) -> HardenKitConfig:
    """Parse and validate configuration data."""
    if "version" not in data:
        raise ConfigError("Missing required field: version")

    if data["version"] != 1:
        raise ConfigError(f"Unsupported version: {data['version']} (expected 1)")

    unknown = set(data) - {"version", "modes", "cache", "probe"}
    if unknown:
        raise ConfigError(
            f"Unknown configuration section(s): {', '.join(sorted(unknown))}"
        )

    return HardenKitConfig(
        version=data["version"],
        modes=_parse_modes(_section(data, "modes")),
        cache=_parse_cache(_section(data, "cache"), base_dir),
        probe=_parse_probe(_section(data, "probe")),
    )


def _section(data: dict, name: str) -> Dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{name} must be a mapping")
    return value


def _bool(section: str, data: dict, key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be true or false")
    return value


def _positive_int(section: str, data: dict, key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{section}.{key} must be a positive integer")
    return value


def _parse_modes(data: dict) -> ModesConfig:
    """Parse mode toggles."""
    return ModesConfig(
        hardening_full=_bool("modes", data, "hardening_full", False),
        ipo_thin=_bool("modes", data, "ipo_thin", False),
    )


def _parse_cache(data: dict, base_dir: Path) -> CacheConfig:
    """Parse probe cache configuration."""
    raw_path = data.get("path", DEFAULT_CACHE_PATH)
    if not isinstance(raw_path, str) or not raw_path:
        raise ConfigError("cache.path must be a non-empty string")

    path = Path(raw_path).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()

    return CacheConfig(
        enabled=_bool("cache", data, "enabled", True),
        path=path,
        lock_timeout=_positive_int("cache", data, "lock_timeout", 30),
    )


def _parse_probe(data: dict) -> ProbeConfig:
    """Parse trial compile configuration."""
    compiler = data.get("compiler", "c++")
    if not isinstance(compiler, str) or not compiler:
        raise ConfigError("probe.compiler must be a non-empty string")

    return ProbeConfig(
        compiler=compiler,
        timeout=_positive_int("probe", data, "timeout", 30),
    )
