"""
Hardening entry point.

Applies every hardening rule group to one target: position independence,
warnings, stack protection, control-flow integrity, speculative-execution
mitigations, linker hardening and fortification definitions. Each target
is processed once per run:

    NOT_STARTED -> PROBING -> COMPOSING -> APPLYING -> DONE
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from hardenkit.core.interfaces import BuildTargetInterface
from hardenkit.core.toolchain import CompilerVendor, ToolchainDescriptor
from hardenkit.engine.applier import FlagApplier
from hardenkit.engine.composer import Composer, flags_by_category
from hardenkit.probe.cache import ProbeCache
from hardenkit.rules.loader import RuleSet, RuleSetLoader
from hardenkit.rules.model import CandidateFlag, FlagCategory, Modes

logger = logging.getLogger(__name__)

POSITION_INDEPENDENT_CODE = "POSITION_INDEPENDENT_CODE"

# Order in which properties are written
CATEGORY_ORDER = [FlagCategory.COMPILE, FlagCategory.LINK, FlagCategory.DEFINITION]


class EntryState(Enum):
    """Progress of an entry point for one target or scope."""

    NOT_STARTED = 0
    PROBING = 1
    COMPOSING = 2
    APPLYING = 3
    DONE = 4


@dataclass
class HardeningReport:
    """
    Outcome of hardening one target.

    Attributes:
        target: Target name
        toolchain: Toolchain description
        supported: False when the compiler vendor has no hardening rules
        state: Last state reached
        groups: Composed flags per rule group (after probing)
        applied: Flags newly appended per property
    """

    target: str
    toolchain: str = ""
    supported: bool = True
    state: EntryState = EntryState.NOT_STARTED
    groups: Dict[str, List[CandidateFlag]] = field(default_factory=dict)
    applied: Dict[str, List[str]] = field(default_factory=dict)

    def advance(self, state: EntryState) -> None:
        if state.value < self.state.value:
            raise RuntimeError(
                f"Invalid transition for {self.target}: "
                f"{self.state.name} -> {state.name}"
            )
        self.state = state

    def flags(self, category: FlagCategory) -> List[str]:
        """Composed flags of a category across all groups, in order."""
        result: List[str] = []
        for candidates in self.groups.values():
            for candidate in candidates:
                if candidate.category == category and candidate.flag not in result:
                    result.append(candidate.flag)
        return result

    def to_dict(self) -> Dict:
        return {
            "target": self.target,
            "toolchain": self.toolchain,
            "supported": self.supported,
            "groups": {
                name: [c.flag for c in candidates]
                for name, candidates in self.groups.items()
            },
            "compile_options": self.flags(FlagCategory.COMPILE),
            "link_options": self.flags(FlagCategory.LINK),
            "compile_definitions": self.flags(FlagCategory.DEFINITION),
            "applied": dict(self.applied),
        }


def setup_hardening(modes: Modes) -> None:
    """Announce the hardening mode for the run."""
    logger.info("Hardening: Enabled")
    if modes.hardening_full:
        logger.info(
            "  Full hardening mode (includes speculative execution mitigations)"
        )
        logger.info("  Note: Full mode may impact performance")
    else:
        logger.info("  Standard hardening mode")
    logger.info("  Call harden(<target>) on your targets to apply")


class Hardener:
    """
    Apply the hardening rule table to targets.

    Example:
        >>> cache = ProbeCache(CompilerFlagProbe())
        >>> hardener = Hardener(toolchain, cache, Modes(hardening_full=True))
        >>> report = hardener.harden(Target("app", TargetKind.EXECUTABLE))
        >>> "-fstack-protector-strong" in report.flags(FlagCategory.COMPILE)
        True
    """

    def __init__(
        self,
        toolchain: ToolchainDescriptor,
        cache: ProbeCache,
        modes: Optional[Modes] = None,
        rule_set: Optional[RuleSet] = None,
        applier: Optional[FlagApplier] = None,
    ):
        self.toolchain = toolchain
        self.cache = cache
        self.modes = modes or Modes()
        self.rule_set = rule_set or RuleSetLoader().load("hardening")
        self.applier = applier or FlagApplier()
        self.composer = Composer(cache)
        self._reports: Dict[str, HardeningReport] = {}

    def is_supported(self) -> bool:
        toolchain = self.toolchain
        return toolchain.is_gnu_like or toolchain.vendor == CompilerVendor.MSVC

    def harden(self, target: BuildTargetInterface) -> HardeningReport:
        """
        Harden one target.

        Args:
            target: Target to modify

        Returns:
            HardeningReport; a second call for the same target returns the
            first report without touching the target again
        """
        if target.name in self._reports:
            logger.debug(f"Target {target.name} already hardened")
            return self._reports[target.name]

        report = HardeningReport(target=target.name, toolchain=str(self.toolchain))
        self._reports[target.name] = report

        logger.info(f"Applying hardening to target: {target.name}")
        target.set_property(POSITION_INDEPENDENT_CODE, True)

        if not self.is_supported():
            logger.warning(
                f"Hardening: Compiler {self.toolchain.vendor.value} not fully supported"
            )
            report.supported = False
            report.advance(EntryState.DONE)
            logger.info(f"Hardening applied to: {target.name}")
            return report

        report.advance(EntryState.PROBING)
        report.groups = self.composer.compose_groups(
            self.rule_set.groups.values(), self.toolchain, self.modes, target.kind
        )

        report.advance(EntryState.COMPOSING)
        per_group = {
            name: flags_by_category(candidates)
            for name, candidates in report.groups.items()
        }

        report.advance(EntryState.APPLYING)
        for category in CATEGORY_ORDER:
            property_name = category.property_name
            for name, grouped in per_group.items():
                flags = grouped.get(category)
                if not flags:
                    continue
                added = self.applier.apply(target, property_name, flags, group=name)
                if added:
                    report.applied.setdefault(property_name, []).extend(added)

        report.advance(EntryState.DONE)
        logger.debug(
            f"{target.name}: "
            f"{sum(len(flags) for flags in report.applied.values())} flags applied"
        )
        logger.info(f"Hardening applied to: {target.name}")
        return report

    def report(self, target_name: str) -> Optional[HardeningReport]:
        return self._reports.get(target_name)
