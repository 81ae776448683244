"""
Test utilities for HardenKit testing.

Provides scripted stand-ins for the compiler-driven probes.
"""

from .mocks import ScriptedIPOCheck, ScriptedProbe

__all__ = [
    "ScriptedIPOCheck",
    "ScriptedProbe",
]
