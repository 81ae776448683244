"""
Interprocedural optimization (IPO/LTO) entry points.

A global support check gates the project-wide switch. When the check fails
on a GNU-compatible compiler, IPO is enabled anyway with a warning, since
the check itself is known to give false negatives there. Per-target
overrides bypass the global decision for one target only.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from hardenkit.core.interfaces import BuildTargetInterface, PropertyHolder
from hardenkit.core.toolchain import CompilerVendor, ToolchainDescriptor
from hardenkit.engine.applier import FlagApplier
from hardenkit.engine.composer import Composer, flags_by_category
from hardenkit.engine.harden import CATEGORY_ORDER, EntryState
from hardenkit.probe.cache import ProbeCache
from hardenkit.probe.capability import IPOCheckResult, IPOSupportCheck
from hardenkit.rules.loader import RuleSet, RuleSetLoader
from hardenkit.rules.model import CandidateFlag, FlagCategory, Modes

logger = logging.getLogger(__name__)

IPO_PROPERTY = "INTERPROCEDURAL_OPTIMIZATION"
IPO_CHECK_KEY = "SUPPORTS_IPO_CHECK"
LTO_GROUP = "lto"
LTO_CACHE_DIRNAME = "lto-cache"

_VARIANT_MESSAGES = {
    "thin": "  Using ThinLTO (faster link times)",
    "parallel": "  Using GCC LTO with jobserver",
    "standard": "  Using standard LTO",
    "full": "  Using full LTO (maximum optimization)",
}


@dataclass
class IPOReport:
    """
    Outcome of enabling IPO on a scope or target.

    Attributes:
        scope: Name of the scope or target
        enabled: Whether the IPO property was switched on
        forced: True when enabled despite a failed support check
        variant: LTO flavour ('thin', 'parallel', 'standard', 'full') or None
        reason: Support check output when IPO stayed off
        flags: Composed LTO flags
        applied: Flags newly appended per property
    """

    scope: str
    enabled: bool = False
    forced: bool = False
    variant: Optional[str] = None
    reason: str = ""
    state: EntryState = EntryState.NOT_STARTED
    flags: List[CandidateFlag] = field(default_factory=list)
    applied: Dict[str, List[str]] = field(default_factory=dict)

    def flags_for(self, category: FlagCategory) -> List[str]:
        return [c.flag for c in self.flags if c.category == category]

    def to_dict(self) -> Dict:
        return {
            "scope": self.scope,
            "enabled": self.enabled,
            "forced": self.forced,
            "variant": self.variant,
            "reason": self.reason,
            "compile_options": self.flags_for(FlagCategory.COMPILE),
            "link_options": self.flags_for(FlagCategory.LINK),
            "applied": dict(self.applied),
        }


class IPOManager:
    """
    Enable link-time optimization for the whole project or single targets.

    Example:
        >>> manager = IPOManager(toolchain, cache, Modes(ipo_thin=True))
        >>> report = manager.enable_ipo(BuildScope())
        >>> report.variant
        'thin'
    """

    def __init__(
        self,
        toolchain: ToolchainDescriptor,
        cache: ProbeCache,
        modes: Optional[Modes] = None,
        rule_set: Optional[RuleSet] = None,
        checker: Optional[IPOSupportCheck] = None,
        applier: Optional[FlagApplier] = None,
    ):
        self.toolchain = toolchain
        self.cache = cache
        self.modes = modes or Modes()
        self.rule_set = rule_set or RuleSetLoader().load("ipo")
        self.checker = checker or IPOSupportCheck()
        self.applier = applier or FlagApplier()
        self.composer = Composer(cache)
        self._check: Optional[IPOCheckResult] = None
        self._reports: Dict[str, IPOReport] = {}

    # ------------------------------------------------------------------
    # Support check
    # ------------------------------------------------------------------

    def check_supported(self) -> IPOCheckResult:
        """
        Run the global IPO support check once per run.

        The verdict goes through the probe cache; the reason text is only
        available when the check actually ran in this process.
        """
        if self._check is not None:
            return self._check

        output: Dict[str, str] = {}

        def compute() -> bool:
            result = self.checker.check(self.toolchain)
            output["reason"] = result.output
            return result.supported

        supported = self.cache.remember(
            IPO_CHECK_KEY, self.toolchain, compute, category="IPO"
        )
        self._check = IPOCheckResult(supported, output.get("reason", ""))
        return self._check

    def variant(self) -> str:
        """LTO flavour selected for the active toolchain and modes."""
        if not self.modes.ipo_thin:
            return "full"
        if self.toolchain.is_clang_family:
            return "thin"
        if (
            self.toolchain.vendor == CompilerVendor.GNU
            and self.toolchain.version_at_least("8.0")
        ):
            return "parallel"
        return "standard"

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def enable_ipo(self, scope: PropertyHolder) -> IPOReport:
        """
        Enable IPO project-wide.

        Args:
            scope: Build scope receiving the IPO switch and LTO flags

        Returns:
            IPOReport; repeated calls for the same scope return the first
            report
        """
        if scope.name in self._reports:
            logger.debug(f"IPO already configured for {scope.name}")
            return self._reports[scope.name]

        report = IPOReport(scope=scope.name)
        self._reports[scope.name] = report

        report.state = EntryState.PROBING
        check = self.check_supported()
        supported = check.supported

        if not supported and self.toolchain.is_gnu_like:
            logger.warning(
                "IPO/LTO: Check failed but compiler supports LTO, enabling anyway"
            )
            supported = True
            report.forced = True

        if not supported:
            logger.warning("IPO/LTO: Not supported by this compiler/platform")
            if check.output:
                logger.info(f"  Reason: {check.output}")
            report.reason = check.output
            scope.set_property(IPO_PROPERTY, False)
            report.state = EntryState.DONE
            return report

        if not report.forced:
            logger.info("IPO/LTO: Supported and enabled")
        scope.set_property(IPO_PROPERTY, True)
        report.enabled = True
        report.variant = self.variant()
        report.flags = self._compose()

        report.state = EntryState.APPLYING
        report.applied = self._apply(scope, report.flags)

        logger.info(_VARIANT_MESSAGES[report.variant])
        if self.toolchain.vendor == CompilerVendor.MSVC:
            logger.info("  Using MSVC Whole Program Optimization")

        report.state = EntryState.DONE
        return report

    def enable_ipo_for_target(self, target: BuildTargetInterface) -> bool:
        """
        Enable IPO for one target regardless of the project-wide setting.

        Only the target's IPO property changes; no flags are appended, so
        a later ``disable_ipo_for_target`` fully reverts the override.

        Returns:
            True if IPO was enabled for the target
        """
        check = self.check_supported()
        if not check.supported:
            logger.warning(
                f"IPO/LTO not available for target {target.name}: {check.output}"
            )
            return False

        target.set_property(IPO_PROPERTY, True)
        logger.info(f"IPO/LTO enabled for target: {target.name}")
        return True

    def disable_ipo_for_target(self, target: BuildTargetInterface) -> None:
        """Disable IPO for one target (e.g., for debugging)."""
        target.set_property(IPO_PROPERTY, False)
        logger.info(f"IPO/LTO disabled for target: {target.name}")

    def setup_lto_cache(
        self, scope: PropertyHolder, binary_dir: Union[str, Path]
    ) -> Optional[Path]:
        """
        Point the ThinLTO cache into the build tree.

        Only Clang-family linkers take a cache directory option. GCC 10+
        parallelizes LTO through the jobserver and gets no flag.

        Returns:
            Cache directory when one was created, else None
        """
        cache_dir = Path(binary_dir) / LTO_CACHE_DIRNAME
        if self.toolchain.is_clang_family:
            cache_dir.mkdir(parents=True, exist_ok=True)
            self.applier.apply(
                scope,
                FlagCategory.LINK.property_name,
                [f"-Wl,--thinlto-cache-dir={cache_dir}"],
                group="lto-cache",
            )
            logger.info(f"LTO cache: {cache_dir}")
            return cache_dir

        toolchain = self.toolchain
        if toolchain.vendor == CompilerVendor.GNU and toolchain.version_at_least("10"):
            cache_dir.mkdir(parents=True, exist_ok=True)
            logger.info("LTO: GCC 10+ supports parallel LTO via jobserver")
            return cache_dir
        return None

    def ipo_enabled_for(
        self, target: BuildTargetInterface, scope: Optional[PropertyHolder] = None
    ) -> bool:
        """Effective IPO switch: the target's own setting wins over the scope's."""
        value = target.get_property(IPO_PROPERTY)
        if value is None and scope is not None:
            value = scope.get_property(IPO_PROPERTY)
        return bool(value)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _compose(self) -> List[CandidateFlag]:
        return self.composer.compose(
            self.rule_set.group(LTO_GROUP), self.toolchain, self.modes
        )

    def _apply(
        self, holder: PropertyHolder, candidates: List[CandidateFlag]
    ) -> Dict[str, List[str]]:
        applied: Dict[str, List[str]] = {}
        grouped = flags_by_category(candidates)
        for category in CATEGORY_ORDER:
            flags = grouped.get(category)
            if not flags:
                continue
            added = self.applier.apply(
                holder, category.property_name, flags, group=LTO_GROUP
            )
            if added:
                applied[category.property_name] = added
        return applied
