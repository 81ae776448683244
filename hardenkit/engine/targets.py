"""
In-memory build targets and build scope.

Reference implementation of the target interfaces the engine consumes.
Adapters for real build systems implement the same interfaces.
"""

import copy
from typing import Any, Dict, List, Optional

from hardenkit.core.interfaces import BuildTargetInterface, PropertyHolder, TargetKind


class PropertyStore(PropertyHolder):
    """Dictionary-backed property holder."""

    def __init__(self, name: str, properties: Optional[Dict[str, Any]] = None):
        self._name = name
        self._properties: Dict[str, Any] = copy.deepcopy(properties or {})

    @property
    def name(self) -> str:
        return self._name

    def get_property(self, property_name: str) -> Optional[Any]:
        # Copies keep callers from mutating stored lists in place
        return copy.deepcopy(self._properties.get(property_name))

    def set_property(self, property_name: str, value: Any) -> None:
        self._properties[property_name] = copy.deepcopy(value)

    def properties(self) -> Dict[str, Any]:
        """Snapshot of every property."""
        return copy.deepcopy(self._properties)

    @property
    def compile_options(self) -> List[str]:
        return list(self.get_property("COMPILE_OPTIONS") or [])

    @property
    def link_options(self) -> List[str]:
        return list(self.get_property("LINK_OPTIONS") or [])

    @property
    def compile_definitions(self) -> List[str]:
        return list(self.get_property("COMPILE_DEFINITIONS") or [])


class Target(PropertyStore, BuildTargetInterface):
    """
    A build target.

    Example:
        >>> app = Target("app", TargetKind.EXECUTABLE, {"COMPILE_OPTIONS": ["-O2"]})
        >>> app.compile_options
        ['-O2']
    """

    def __init__(
        self,
        name: str,
        kind: TargetKind = TargetKind.EXECUTABLE,
        properties: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(name, properties)
        self._kind = kind

    @property
    def kind(self) -> TargetKind:
        return self._kind

    def __repr__(self) -> str:
        return f"Target(name='{self.name}', kind={self.kind.value})"


class BuildScope(PropertyStore):
    """
    Directory/project-wide settings inherited by every target
    (``add_compile_options`` / ``add_link_options`` / global variables).
    """

    def __init__(
        self, name: str = "global", properties: Optional[Dict[str, Any]] = None
    ):
        super().__init__(name, properties)

    def __repr__(self) -> str:
        return f"BuildScope(name='{self.name}')"
