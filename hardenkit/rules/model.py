"""Rule model for declarative flag tables.

A rule pairs one candidate flag with a predicate over the active toolchain,
the user mode toggles and (optionally) the kind of target being configured.
Rules live in named groups such as ``stack-protection`` or ``lto``; the
Composer evaluates every group the same way, so toolchain quirks are
expressed as predicate changes rather than new branches.

Example:
    >>> rule = Rule("-mbranch-protection=standard", FlagCategory.COMPILE,
    ...             when=arch_family_is("aarch64") & ~vendor_is(CompilerVendor.APPLE_CLANG))
    >>> rule.applies(RuleContext(toolchain, Modes()))
    True
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional

from hardenkit.core.interfaces import TargetKind
from hardenkit.core.toolchain import CompilerVendor, ToolchainDescriptor


class FlagCategory(Enum):
    """Target property a flag is written to."""

    COMPILE = "COMPILE_OPTIONS"
    LINK = "LINK_OPTIONS"
    DEFINITION = "COMPILE_DEFINITIONS"

    @property
    def property_name(self) -> str:
        """Target property name for this category."""
        return self.value

    @classmethod
    def from_name(cls, name: str) -> "FlagCategory":
        """Parse 'compile', 'link', 'definition' or a property name."""
        short = {
            "compile": cls.COMPILE,
            "link": cls.LINK,
            "definition": cls.DEFINITION,
            "define": cls.DEFINITION,
        }
        key = name.strip()
        if key.lower() in short:
            return short[key.lower()]
        return cls(key.upper())


@dataclass(frozen=True)
class Modes:
    """
    User-controlled mode toggles.

    Attributes:
        hardening_full: Enable performance-costly mitigations (ENABLE_HARDENING_FULL)
        ipo_thin: Prefer ThinLTO / parallel LTO (ENABLE_IPO_THIN)
    """

    hardening_full: bool = False
    ipo_thin: bool = False

    def is_enabled(self, name: str) -> bool:
        """
        Look up a mode by name.

        Raises:
            KeyError: If the mode does not exist
        """
        if name not in self.__dataclass_fields__:
            raise KeyError(f"Unknown mode: {name}")
        return bool(getattr(self, name))


@dataclass(frozen=True)
class RuleContext:
    """Everything a predicate may look at."""

    toolchain: ToolchainDescriptor
    modes: Modes = field(default_factory=Modes)
    target_kind: Optional[TargetKind] = None


class Predicate:
    """
    Pure boolean function over a RuleContext.

    Predicates compose with ``&``, ``|`` and ``~`` and carry a readable
    description for diagnostics.
    """

    def __init__(self, func: Callable[[RuleContext], bool], description: str):
        self._func = func
        self.description = description

    def __call__(self, context: RuleContext) -> bool:
        return bool(self._func(context))

    def __and__(self, other: "Predicate") -> "Predicate":
        if self is ALWAYS:
            return other
        if other is ALWAYS:
            return self
        return Predicate(
            lambda ctx: self(ctx) and other(ctx),
            f"({self.description} and {other.description})",
        )

    def __or__(self, other: "Predicate") -> "Predicate":
        return Predicate(
            lambda ctx: self(ctx) or other(ctx),
            f"({self.description} or {other.description})",
        )

    def __invert__(self) -> "Predicate":
        return Predicate(lambda ctx: not self(ctx), f"not {self.description}")

    def __repr__(self) -> str:
        return f"Predicate({self.description})"


ALWAYS = Predicate(lambda ctx: True, "always")


def all_of(predicates: Iterable[Predicate]) -> Predicate:
    """Conjunction of predicates (ALWAYS when empty)."""
    result = ALWAYS
    for predicate in predicates:
        result = result & predicate
    return result


def any_of(predicates: Iterable[Predicate]) -> Predicate:
    """Disjunction of predicates (never true when empty)."""
    items = list(predicates)
    if not items:
        return Predicate(lambda ctx: False, "never")
    result = items[0]
    for predicate in items[1:]:
        result = result | predicate
    return result


# ============================================================================
# Predicate factories
# ============================================================================


def vendor_is(*vendors: CompilerVendor) -> Predicate:
    names = "|".join(v.value for v in vendors)
    return Predicate(lambda ctx: ctx.toolchain.vendor in vendors, f"vendor={names}")


def gnu_like() -> Predicate:
    return Predicate(lambda ctx: ctx.toolchain.is_gnu_like, "vendor=GNU|Clang")


def clang_family() -> Predicate:
    return Predicate(lambda ctx: ctx.toolchain.is_clang_family, "vendor=Clang-family")


def system_matches(pattern: str) -> Predicate:
    """Regex search on the system name, like CMake's ``MATCHES``."""
    regex = re.compile(pattern)
    return Predicate(
        lambda ctx: regex.search(ctx.toolchain.system_name) is not None,
        f"system~{pattern}",
    )


def arch_family_is(*families: str) -> Predicate:
    return Predicate(
        lambda ctx: ctx.toolchain.arch_family in families,
        f"arch={'|'.join(families)}",
    )


def pointer_width_is(bits: int) -> Predicate:
    return Predicate(
        lambda ctx: ctx.toolchain.pointer_width == bits, f"pointer_width={bits}"
    )


def mode_enabled(name: str) -> Predicate:
    Modes().is_enabled(name)  # reject unknown names up front
    return Predicate(lambda ctx: ctx.modes.is_enabled(name), f"mode:{name}")


def version_at_least(minimum: str) -> Predicate:
    return Predicate(
        lambda ctx: ctx.toolchain.version_at_least(minimum), f"version>={minimum}"
    )


def target_kind_is(*kinds: TargetKind) -> Predicate:
    """True when the target kind is one of ``kinds`` (false for scope-level use)."""
    names = "|".join(k.value for k in kinds)
    return Predicate(lambda ctx: ctx.target_kind in kinds, f"target={names}")


# ============================================================================
# Rules and groups
# ============================================================================


@dataclass(frozen=True)
class CandidateFlag:
    """
    A flag selected by predicate evaluation, before or after probing.

    Attributes:
        flag: Literal flag text passed to the toolchain
        category: Property category the flag belongs to
        group: Name of the rule group that produced it
    """

    flag: str
    category: FlagCategory
    group: str = ""

    @property
    def binding(self) -> str:
        """Which invocation validates the flag: 'compiler' or 'linker'."""
        return "linker" if self.category == FlagCategory.LINK else "compiler"


@dataclass(frozen=True)
class Rule:
    """
    A candidate flag guarded by a predicate.

    Attributes:
        flag: Literal flag text
        category: Property category
        when: Predicate that must hold for the flag to be considered
        probe: Whether the toolchain must accept the flag (False for
            vendor-matched definitions and MSVC switches)
        note: Short human description
    """

    flag: str
    category: FlagCategory
    when: Predicate = ALWAYS
    probe: bool = True
    note: str = ""

    def applies(self, context: RuleContext) -> bool:
        return self.when(context)


@dataclass
class RuleGroup:
    """
    Named, ordered list of rules with a shared purpose.

    Attributes:
        name: Group name (e.g., 'stack-protection')
        rules: Rules in declaration order
        description: Human-readable purpose
        kind: Cache namespace ('HARDENING' or 'IPO')
        cached: Whether probe results for this group go through the cache
    """

    name: str
    rules: List[Rule] = field(default_factory=list)
    description: str = ""
    kind: str = "HARDENING"
    cached: bool = True

    def applicable(self, context: RuleContext) -> List[Rule]:
        """Rules whose predicate holds, in declaration order."""
        return [rule for rule in self.rules if rule.applies(context)]

    def categories(self) -> List[FlagCategory]:
        """Categories present in this group, in first-seen order."""
        seen: List[FlagCategory] = []
        for rule in self.rules:
            if rule.category not in seen:
                seen.append(rule.category)
        return seen

    def __len__(self) -> int:
        return len(self.rules)
