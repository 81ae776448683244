"""
Flag applier.

Merges composed flags into a target (or scope) property. Existing entries
keep their order and are never removed; new flags are appended once. A
per-run ledger records which (holder, property, group) triples were already
applied so that calling an entry point twice is a no-op. Targets and scopes
live in separate namespaces of the ledger, so a target named like a scope
is still a different holder.
"""

import logging
from typing import Any, Iterable, List, Optional, Set, Tuple

from hardenkit.core.interfaces import BuildTargetInterface, PropertyHolder

logger = logging.getLogger(__name__)


def _ledger_key(
    holder: PropertyHolder, property_name: str, group: str
) -> Tuple[str, str, str, str]:
    namespace = "target" if isinstance(holder, BuildTargetInterface) else "scope"
    return (namespace, holder.name, property_name, group)


def property_as_list(value: Any) -> List[str]:
    """
    Normalize a stored property value to a list of strings.

    ``None`` and CMake ``*-NOTFOUND`` markers count as empty; strings are
    treated as semicolon-separated CMake lists.
    """
    if value is None:
        return []
    if isinstance(value, str):
        if value.endswith("NOTFOUND"):
            return []
        return [item for item in value.split(";") if item]
    return [str(item) for item in value]


class FlagApplier:
    """
    Append-only, idempotent writer for flag properties.

    Example:
        >>> applier = FlagApplier()
        >>> applier.apply(target, "COMPILE_OPTIONS", ["-Wall"], group="warnings")
        ['-Wall']
        >>> applier.apply(target, "COMPILE_OPTIONS", ["-Wall"], group="warnings")
        []
    """

    def __init__(self):
        self._ledger: Set[Tuple[str, str, str, str]] = set()

    def apply(
        self,
        holder: PropertyHolder,
        property_name: str,
        flags: Iterable[str],
        group: Optional[str] = None,
    ) -> List[str]:
        """
        Append flags to a property.

        Args:
            holder: Target or scope to modify
            property_name: Property to extend (e.g., 'LINK_OPTIONS')
            flags: Flags in the order they should be appended
            group: Rule group the flags came from; a group is applied to a
                given holder/property at most once per applier

        Returns:
            Flags actually appended
        """
        if group is not None:
            ledger_key = _ledger_key(holder, property_name, group)
            if ledger_key in self._ledger:
                logger.debug(
                    f"{group} already applied to {holder.name}.{property_name}"
                )
                return []

        current = property_as_list(holder.get_property(property_name))
        present = set(current)

        added = []
        for flag in flags:
            if flag in present:
                continue
            present.add(flag)
            added.append(flag)

        if added:
            # Single write of the merged list
            holder.set_property(property_name, current + added)
            logger.debug(f"{holder.name}.{property_name} += {' '.join(added)}")

        if group is not None:
            self._ledger.add(ledger_key)

        return added

    def has_applied(
        self, holder: PropertyHolder, property_name: str, group: str
    ) -> bool:
        return _ledger_key(holder, property_name, group) in self._ledger

    def reset(self) -> None:
        """Forget the ledger (start of a new configuration run)."""
        self._ledger.clear()
