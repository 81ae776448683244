"""
Shared utilities for CLI commands.

Configuration loading, toolchain resolution and probe cache construction
used by the 'harden', 'ipo' and 'cache' commands.
"""

import logging
from pathlib import Path
from typing import Optional

from hardenkit.config.settings import HardenKitConfig, load_config
from hardenkit.core.exceptions import ConfigError
from hardenkit.core.toolchain import (
    ToolchainDescriptor,
    detect_toolchain,
    host_defaults,
)
from hardenkit.probe.cache import ProbeCache
from hardenkit.probe.capability import CompilerFlagProbe

logger = logging.getLogger(__name__)


def load_settings(args) -> HardenKitConfig:
    """Load configuration from --config (or ./hardenkit.yaml, or defaults)."""
    return load_config(getattr(args, "config", None))


def resolve_toolchain(args, config: HardenKitConfig) -> ToolchainDescriptor:
    """
    Build the toolchain descriptor from command-line arguments.

    ``--vendor`` describes the toolchain explicitly; otherwise the compiler
    (``--compiler`` or ``probe.compiler``) is detected. Explicit
    ``--system``/``--processor``/``--pointer-width`` override host values.

    Raises:
        ConfigError: If --vendor is given without --compiler-version
        ToolchainError: If detection fails or the description is malformed
    """
    if args.vendor:
        if not args.compiler_version:
            raise ConfigError("--vendor requires --compiler-version")
        host = host_defaults()
        return ToolchainDescriptor.from_compiler_id(
            args.vendor,
            args.compiler_version,
            args.system or host["system_name"],
            args.processor or host["processor"],
            args.pointer_width or host["pointer_width"],
            compiler=args.compiler,
        )

    return detect_toolchain(
        args.compiler or config.probe.compiler,
        system_name=args.system,
        processor=args.processor,
        pointer_width=args.pointer_width,
        timeout=config.probe.timeout,
    )


def open_cache(
    config: HardenKitConfig, no_cache: bool = False, cache_path: Optional[Path] = None
) -> ProbeCache:
    """Create the probe cache described by the configuration."""
    return ProbeCache(
        CompilerFlagProbe(timeout=config.probe.timeout),
        cache_path=cache_path or config.cache.path,
        enabled=config.cache.enabled and not no_cache,
        lock_timeout=config.cache.lock_timeout,
    )


def safe_print(message: str, file=None):
    """
    Print message with safe encoding handling for Windows console.

    Args:
        message: Message to print
        file: Output file (default: stdout)
    """
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        print(message.encode("ascii", "replace").decode("ascii"), file=file)
