"""
Centralized exception hierarchy for HardenKit.

Capability absence is not an error: probes answer ``False`` instead of
raising. The exceptions below cover configuration, rule tables, cache
storage and toolchain detection faults.
"""


# ============================================================================
# Base Exceptions
# ============================================================================


class HardenKitError(Exception):
    """Base exception for all HardenKit errors."""

    pass


# ============================================================================
# Toolchain Exceptions
# ============================================================================


class ToolchainError(HardenKitError):
    """Base exception for toolchain-related errors."""

    pass


class ToolchainDetectionError(ToolchainError):
    """Raised when a compiler executable cannot be identified."""

    def __init__(self, compiler: str, reason: str = ""):
        self.compiler = compiler
        self.reason = reason
        msg = f"Could not detect toolchain for compiler: {compiler}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class UnsupportedToolchainError(ToolchainError):
    """Raised when a toolchain description is malformed."""

    pass


# ============================================================================
# Probe Cache Exceptions
# ============================================================================


class ProbeCacheError(HardenKitError):
    """Base exception for probe cache storage errors."""

    pass


class ProbeCacheLockTimeout(ProbeCacheError):
    """Raised when the cache file lock cannot be acquired within timeout."""

    pass


class CacheKeyCollisionError(ProbeCacheError):
    """Raised when two distinct flags normalize to the same cache key."""

    def __init__(self, key: str, existing_flag: str, new_flag: str):
        self.key = key
        self.existing_flag = existing_flag
        self.new_flag = new_flag
        super().__init__(
            f"Cache key collision on {key}: '{existing_flag}' vs '{new_flag}'"
        )


# ============================================================================
# Rule Set Exceptions
# ============================================================================


class RuleSetError(HardenKitError):
    """Base exception for rule table errors."""

    pass


class RuleSetNotFoundError(RuleSetError):
    """Raised when a rule table file or group does not exist."""

    pass


class RuleSetInvalidError(RuleSetError):
    """Raised when a rule table is malformed."""

    pass


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigError(HardenKitError):
    """Configuration parsing or validation error."""

    pass
