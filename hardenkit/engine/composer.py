"""
Composer: evaluate a rule group against the environment.

Predicates drop inapplicable rules, the probe cache drops flags the
toolchain rejects, and what remains comes back in declaration order.
An empty result is not an error.
"""

import logging
from typing import Dict, Iterable, List, Optional

from hardenkit.core.interfaces import TargetKind
from hardenkit.core.toolchain import ToolchainDescriptor
from hardenkit.probe.cache import ProbeCache
from hardenkit.rules.model import (
    CandidateFlag,
    FlagCategory,
    Modes,
    RuleContext,
    RuleGroup,
)

logger = logging.getLogger(__name__)


class Composer:
    """
    Produce the supported, applicable flags of a rule group.

    Example:
        >>> composer = Composer(cache)
        >>> flags = composer.compose(rule_set.group("warnings"), toolchain, Modes())
        >>> [c.flag for c in flags]
        ['-Wall', '-Wextra', ...]
    """

    def __init__(self, cache: ProbeCache):
        self.cache = cache

    def compose(
        self,
        group: RuleGroup,
        toolchain: ToolchainDescriptor,
        modes: Optional[Modes] = None,
        target_kind: Optional[TargetKind] = None,
        category: Optional[FlagCategory] = None,
    ) -> List[CandidateFlag]:
        """
        Compose one group.

        Args:
            group: Rule group to evaluate
            toolchain: Active toolchain
            modes: Mode toggles (defaults to all off)
            target_kind: Kind of the target being configured, None for scopes
            category: Only keep rules of this category

        Returns:
            Candidate flags in declaration order, without duplicates
        """
        context = RuleContext(toolchain, modes or Modes(), target_kind)
        use_cache = None if group.cached else False

        result: List[CandidateFlag] = []
        seen = set()
        for rule in group.rules:
            if category is not None and rule.category != category:
                continue
            if (rule.flag, rule.category) in seen:
                continue
            if not rule.applies(context):
                continue

            if rule.probe and not self.cache.get_or_compute(
                rule.flag,
                rule.category,
                toolchain,
                kind=group.kind,
                use_cache=use_cache,
            ):
                logger.debug(f"{group.name}: {rule.flag} unsupported by {toolchain}")
                continue

            seen.add((rule.flag, rule.category))
            result.append(CandidateFlag(rule.flag, rule.category, group.name))

        if not result:
            logger.debug(f"{group.name}: no applicable flags for {toolchain}")
        return result

    def compose_groups(
        self,
        groups: Iterable[RuleGroup],
        toolchain: ToolchainDescriptor,
        modes: Optional[Modes] = None,
        target_kind: Optional[TargetKind] = None,
    ) -> Dict[str, List[CandidateFlag]]:
        """Compose several groups, keyed by group name in the given order."""
        return {
            group.name: self.compose(group, toolchain, modes, target_kind)
            for group in groups
        }


def flags_by_category(
    candidates: Iterable[CandidateFlag],
) -> Dict[FlagCategory, List[str]]:
    """
    Split candidates into per-property flag lists, keeping order.

    Example:
        >>> flags_by_category([CandidateFlag("-pie", FlagCategory.LINK)])
        {<FlagCategory.LINK: 'LINK_OPTIONS'>: ['-pie']}
    """
    grouped: Dict[FlagCategory, List[str]] = {}
    for candidate in candidates:
        flags = grouped.setdefault(candidate.category, [])
        if candidate.flag not in flags:
            flags.append(candidate.flag)
    return grouped
