"""
Toolchain capability probing.

Trial compiles decide whether a flag is accepted; the probe cache remembers
the verdicts per toolchain.
"""

from hardenkit.probe.capability import (
    CapabilityProbe,
    CompilerFlagProbe,
    IPOCheckResult,
    IPOSupportCheck,
)
from hardenkit.probe.cache import CacheEntry, ProbeCache, cache_key, normalize_flag

__all__ = [
    "CapabilityProbe",
    "CompilerFlagProbe",
    "IPOCheckResult",
    "IPOSupportCheck",
    "CacheEntry",
    "ProbeCache",
    "cache_key",
    "normalize_flag",
]
