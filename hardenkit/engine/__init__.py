"""
Flag composition and application.

The composer turns rule groups into supported flags; the applier merges them
into targets; ``Hardener`` and ``IPOManager`` are the entry points.
"""

from hardenkit.engine.applier import FlagApplier
from hardenkit.engine.composer import Composer
from hardenkit.engine.harden import (
    EntryState,
    Hardener,
    HardeningReport,
    setup_hardening,
)
from hardenkit.engine.ipo import IPOManager, IPOReport
from hardenkit.engine.targets import BuildScope, Target

__all__ = [
    "FlagApplier",
    "Composer",
    "EntryState",
    "Hardener",
    "HardeningReport",
    "setup_hardening",
    "IPOManager",
    "IPOReport",
    "BuildScope",
    "Target",
]
