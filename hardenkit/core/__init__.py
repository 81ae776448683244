"""
Core functionality for HardenKit.

This package contains the foundational modules that other components depend on.
"""

from .exceptions import (
    HardenKitError,
    ToolchainError,
    ToolchainDetectionError,
    UnsupportedToolchainError,
    ProbeCacheError,
    ProbeCacheLockTimeout,
    CacheKeyCollisionError,
    RuleSetError,
    RuleSetNotFoundError,
    RuleSetInvalidError,
    ConfigError,
)

from .toolchain import (
    CompilerVendor,
    ToolchainDescriptor,
    detect_toolchain,
    host_defaults,
    parse_version_banner,
)

from .interfaces import (
    TargetKind,
    PropertyHolder,
    BuildTargetInterface,
)

from .filesystem import atomic_write, read_json

__all__ = [
    # Exceptions
    "HardenKitError",
    "ToolchainError",
    "ToolchainDetectionError",
    "UnsupportedToolchainError",
    "ProbeCacheError",
    "ProbeCacheLockTimeout",
    "CacheKeyCollisionError",
    "RuleSetError",
    "RuleSetNotFoundError",
    "RuleSetInvalidError",
    "ConfigError",
    # Toolchain
    "CompilerVendor",
    "ToolchainDescriptor",
    "detect_toolchain",
    "host_defaults",
    "parse_version_banner",
    # Interfaces
    "TargetKind",
    "PropertyHolder",
    "BuildTargetInterface",
    # Filesystem
    "atomic_write",
    "read_json",
]
