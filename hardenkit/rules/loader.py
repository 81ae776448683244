"""
YAML-based rule table loader for HardenKit.

Rule tables are declarative: each group lists candidate flags with a
``when`` condition mapping. Conditions on a group apply to every rule in it.

Example table:

    kind: HARDENING
    groups:
      stack-protection:
        description: Stack smashing and stack clash protection
        when: {gnu_like: true}
        rules:
          - flag: -fstack-protector-strong
            category: compile
          - flag: -fstack-clash-protection
            category: compile
            when: {not_vendor: [AppleClang]}

Supported condition keys: vendor, not_vendor, gnu_like, clang_family,
system, not_system, arch, not_arch, pointer_width, mode, not_mode,
min_version, below_version, target_kind, not_target_kind, any (list of
condition mappings, OR-ed).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from hardenkit.core.exceptions import (
    RuleSetError,
    RuleSetInvalidError,
    RuleSetNotFoundError,
)
from hardenkit.core.interfaces import TargetKind
from hardenkit.core.toolchain import CompilerVendor
from hardenkit.rules.model import (
    FlagCategory,
    Predicate,
    Rule,
    RuleGroup,
    all_of,
    any_of,
    arch_family_is,
    clang_family,
    gnu_like,
    mode_enabled,
    pointer_width_is,
    system_matches,
    target_kind_is,
    vendor_is,
    version_at_least,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data" / "rules"


@dataclass
class RuleSet:
    """
    All rule groups loaded from one table file.

    Attributes:
        name: Table name (file stem, e.g., 'hardening')
        kind: Cache namespace for probes ('HARDENING', 'IPO')
        groups: Groups in declaration order
    """

    name: str
    kind: str
    groups: Dict[str, RuleGroup] = field(default_factory=dict)

    def group(self, name: str) -> RuleGroup:
        """
        Get a group by name.

        Raises:
            RuleSetNotFoundError: If the group does not exist
        """
        if name not in self.groups:
            raise RuleSetNotFoundError(
                f"Rule group '{name}' not found in '{self.name}'. "
                f"Available groups: {', '.join(self.group_names())}"
            )
        return self.groups[name]

    def group_names(self) -> List[str]:
        return list(self.groups)


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _vendors(value: Any, where: str) -> List[CompilerVendor]:
    vendors = []
    for item in _as_list(value):
        vendor = CompilerVendor.from_id(str(item))
        if vendor == CompilerVendor.OTHER and str(item).lower() != "other":
            raise RuleSetInvalidError(f"{where}: unknown vendor '{item}'")
        vendors.append(vendor)
    return vendors


def _kinds(value: Any, where: str) -> List[TargetKind]:
    try:
        return [TargetKind.from_name(str(item)) for item in _as_list(value)]
    except ValueError as e:
        raise RuleSetInvalidError(f"{where}: {e}") from e


def parse_condition(condition: Optional[Dict[str, Any]], where: str = "") -> Predicate:
    """
    Build a predicate from a ``when`` mapping (all keys AND-ed).

    Args:
        condition: Condition mapping, or None for "always"
        where: Location used in error messages

    Returns:
        Predicate

    Raises:
        RuleSetInvalidError: If a key or value is not understood
    """
    if condition is None:
        return all_of([])
    if not isinstance(condition, dict):
        raise RuleSetInvalidError(
            f"{where}: 'when' must be a mapping, got {type(condition).__name__}"
        )

    parts: List[Predicate] = []
    for key, value in condition.items():
        if key == "vendor":
            parts.append(vendor_is(*_vendors(value, where)))
        elif key == "not_vendor":
            parts.append(~vendor_is(*_vendors(value, where)))
        elif key == "gnu_like":
            parts.append(gnu_like() if value else ~gnu_like())
        elif key == "clang_family":
            parts.append(clang_family() if value else ~clang_family())
        elif key == "system":
            parts.append(system_matches(str(value)))
        elif key == "not_system":
            parts.append(~system_matches(str(value)))
        elif key == "arch":
            parts.append(arch_family_is(*[str(v) for v in _as_list(value)]))
        elif key == "not_arch":
            parts.append(~arch_family_is(*[str(v) for v in _as_list(value)]))
        elif key == "pointer_width":
            if value not in (32, 64):
                raise RuleSetInvalidError(f"{where}: pointer_width must be 32 or 64")
            parts.append(pointer_width_is(value))
        elif key in ("mode", "not_mode"):
            for name in _as_list(value):
                try:
                    predicate = mode_enabled(str(name))
                except KeyError as e:
                    raise RuleSetInvalidError(f"{where}: {e.args[0]}") from e
                parts.append(predicate if key == "mode" else ~predicate)
        elif key == "min_version":
            parts.append(version_at_least(str(value)))
        elif key == "below_version":
            parts.append(~version_at_least(str(value)))
        elif key == "target_kind":
            parts.append(target_kind_is(*_kinds(value, where)))
        elif key == "not_target_kind":
            parts.append(~target_kind_is(*_kinds(value, where)))
        elif key == "any":
            parts.append(
                any_of(
                    parse_condition(item, f"{where}.any[{i}]")
                    for i, item in enumerate(_as_list(value))
                )
            )
        else:
            raise RuleSetInvalidError(f"{where}: unknown condition '{key}'")

    return all_of(parts)


class RuleSetLoader:
    """
    Load rule tables from YAML files.

    Example:
        >>> loader = RuleSetLoader()
        >>> hardening = loader.load("hardening")
        >>> hardening.group("stack-protection").rules[0].flag
        '-fstack-protector-strong'
    """

    def __init__(self, data_dir: Optional[Union[str, Path]] = None):
        """
        Initialize the loader.

        Args:
            data_dir: Directory holding ``<name>.yaml`` tables
                (default: the tables shipped with the package)
        """
        self.data_dir = Path(data_dir) if data_dir is not None else DEFAULT_DATA_DIR
        self._cache: Dict[str, RuleSet] = {}

    def list_available(self) -> List[str]:
        if not self.data_dir.exists():
            return []
        return sorted(f.stem for f in self.data_dir.glob("*.yaml"))

    def load(self, name: str) -> RuleSet:
        """
        Load (and cache) a rule table.

        Args:
            name: Table name without extension ('hardening', 'ipo')

        Raises:
            RuleSetNotFoundError: If the file does not exist
            RuleSetInvalidError: If the YAML is malformed
        """
        if name in self._cache:
            return self._cache[name]

        yaml_file = self.data_dir / f"{name}.yaml"
        if not yaml_file.exists():
            raise RuleSetNotFoundError(
                f"Rule table not found: {yaml_file}\n"
                f"Available tables: {', '.join(self.list_available())}"
            )

        try:
            with open(yaml_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RuleSetInvalidError(f"Invalid YAML syntax in {yaml_file}: {e}") from e
        except OSError as e:
            raise RuleSetError(f"Failed to load {yaml_file}: {e}") from e

        rule_set = self.parse(name, data)
        logger.debug(
            f"Loaded rule table '{name}' with {len(rule_set.groups)} group(s)"
        )
        self._cache[name] = rule_set
        return rule_set

    @staticmethod
    def parse(name: str, data: Any) -> RuleSet:
        """
        Build a RuleSet from parsed YAML data.

        Raises:
            RuleSetInvalidError: If the structure is wrong
        """
        if not isinstance(data, dict):
            raise RuleSetInvalidError(
                f"Rule table '{name}' must be a mapping, got {type(data).__name__}"
            )

        kind = str(data.get("kind", "HARDENING")).upper()
        groups_data = data.get("groups")
        if not isinstance(groups_data, dict) or not groups_data:
            raise RuleSetInvalidError(f"Rule table '{name}' defines no groups")

        rule_set = RuleSet(name=name, kind=kind)
        for group_name, group_data in groups_data.items():
            rule_set.groups[group_name] = _parse_group(kind, group_name, group_data)
        return rule_set


def _parse_group(kind: str, group_name: str, data: Any) -> RuleGroup:
    where = f"groups.{group_name}"
    if not isinstance(data, dict):
        raise RuleSetInvalidError(f"{where}: group must be a mapping")

    group_when = parse_condition(data.get("when"), where)
    group_probe = bool(data.get("probe", True))

    rules_data = data.get("rules") or []
    if not isinstance(rules_data, list):
        raise RuleSetInvalidError(f"{where}: 'rules' must be a list")

    rules = []
    for index, rule_data in enumerate(rules_data):
        rule_where = f"{where}.rules[{index}]"
        if not isinstance(rule_data, dict) or "flag" not in rule_data:
            raise RuleSetInvalidError(f"{rule_where}: rule needs a 'flag'")

        flag = str(rule_data["flag"]).strip()
        if not flag:
            raise RuleSetInvalidError(f"{rule_where}: empty flag")

        try:
            category = FlagCategory.from_name(str(rule_data.get("category", "compile")))
        except ValueError as e:
            raise RuleSetInvalidError(f"{rule_where}: {e}") from e

        rules.append(
            Rule(
                flag=flag,
                category=category,
                when=group_when & parse_condition(rule_data.get("when"), rule_where),
                probe=bool(rule_data.get("probe", group_probe)),
                note=str(rule_data.get("note", "")),
            )
        )

    return RuleGroup(
        name=group_name,
        rules=rules,
        description=str(data.get("description", "")),
        kind=kind,
        cached=bool(data.get("cache", True)),
    )
