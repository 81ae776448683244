"""
Core interfaces for HardenKit.

The engine never owns build targets. It consumes whatever the surrounding
build description provides through the interfaces below, so the same
engine can drive an in-memory model, a generated CMake script, or any
other build system adapter.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional


class TargetKind(Enum):
    """Kind of build target (mirrors the CMake TYPE property)."""

    EXECUTABLE = "EXECUTABLE"
    SHARED_LIBRARY = "SHARED_LIBRARY"
    STATIC_LIBRARY = "STATIC_LIBRARY"
    MODULE_LIBRARY = "MODULE_LIBRARY"
    OBJECT_LIBRARY = "OBJECT_LIBRARY"

    @classmethod
    def from_name(cls, name: str) -> "TargetKind":
        """
        Parse a target kind from a CMake TYPE or a short name.

        Args:
            name: 'EXECUTABLE', 'executable', 'shared', 'static', ...

        Raises:
            ValueError: If the name is not a known kind
        """
        short = {
            "executable": cls.EXECUTABLE,
            "exe": cls.EXECUTABLE,
            "shared": cls.SHARED_LIBRARY,
            "static": cls.STATIC_LIBRARY,
            "module": cls.MODULE_LIBRARY,
            "object": cls.OBJECT_LIBRARY,
        }
        key = name.strip()
        if key.lower() in short:
            return short[key.lower()]
        try:
            return cls(key.upper())
        except ValueError:
            raise ValueError(f"Unknown target kind: {name}") from None


class PropertyHolder(ABC):
    """
    Anything that carries named properties: a target or a build scope.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in diagnostics and in the applier ledger."""
        pass

    @abstractmethod
    def get_property(self, property_name: str) -> Optional[Any]:
        """
        Read a property.

        Args:
            property_name: Property name (e.g., 'COMPILE_OPTIONS')

        Returns:
            Property value, or None if the property is not set
        """
        pass

    @abstractmethod
    def set_property(self, property_name: str, value: Any) -> None:
        """
        Replace a property value.

        Args:
            property_name: Property name
            value: New value
        """
        pass


class BuildTargetInterface(PropertyHolder):
    """A declared build target (executable or library)."""

    @property
    @abstractmethod
    def kind(self) -> TargetKind:
        """Target kind tag."""
        pass


__all__ = [
    "TargetKind",
    "PropertyHolder",
    "BuildTargetInterface",
]
