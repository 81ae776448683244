"""
Toolchain descriptor for HardenKit.

The descriptor identifies the active compiler (vendor, version) and the
target platform (operating system, CPU, pointer width). It is established
once per configuration run, normally by the surrounding build system, and
every rule predicate is evaluated against it.

Example:
    >>> tc = ToolchainDescriptor.from_compiler_id("GNU", "13.2.0", "Linux", "x86_64", 64)
    >>> tc.vendor
    <CompilerVendor.GNU: 'GNU'>
    >>> tc.arch_family
    'x86'
"""

import hashlib
import json
import logging
import platform
import re
import struct
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import PureWindowsPath
from typing import List, Optional, Tuple

from packaging.version import Version

from hardenkit.core.exceptions import (
    ToolchainDetectionError,
    UnsupportedToolchainError,
)

logger = logging.getLogger(__name__)


class CompilerVendor(Enum):
    """Compiler identity, named after the CMake compiler ids."""

    GNU = "GNU"
    CLANG = "Clang"
    APPLE_CLANG = "AppleClang"
    MSVC = "MSVC"
    OTHER = "Other"

    @classmethod
    def from_id(cls, compiler_id: str) -> "CompilerVendor":
        """
        Map a compiler id string to a vendor.

        Accepts CMake ids (``GNU``, ``Clang``, ``AppleClang``, ``MSVC``) and
        the short names used on the command line (``gcc``, ``clang``,
        ``apple-clang``, ``msvc``). Unknown ids map to ``OTHER``.
        """
        aliases = {
            "gnu": cls.GNU,
            "gcc": cls.GNU,
            "g++": cls.GNU,
            "clang": cls.CLANG,
            "llvm": cls.CLANG,
            "appleclang": cls.APPLE_CLANG,
            "apple-clang": cls.APPLE_CLANG,
            "apple_clang": cls.APPLE_CLANG,
            "msvc": cls.MSVC,
            "cl": cls.MSVC,
        }
        return aliases.get(compiler_id.strip().lower(), cls.OTHER)


# Processor families, matched the way CMAKE_SYSTEM_PROCESSOR is usually tested
_X86_PATTERN = re.compile(r"^(x86_64|amd64|x64|i[3-6]86|x86)$", re.IGNORECASE)
_AARCH64_PATTERN = re.compile(r"^(aarch64|arm64)", re.IGNORECASE)


@dataclass(frozen=True)
class ToolchainDescriptor:
    """
    Immutable description of the active toolchain and target platform.

    Attributes:
        vendor: Compiler vendor
        version: Compiler version string (e.g., '13.2.0')
        system_name: Target operating system ('Linux', 'Darwin', 'Windows')
        processor: Target CPU ('x86_64', 'aarch64', 'arm64', 'i686', ...)
        pointer_width: Pointer size in bits (32 or 64)
        compiler: Compiler executable used for capability probes
    """

    vendor: CompilerVendor
    version: str
    system_name: str
    processor: str
    pointer_width: int = 64
    compiler: Optional[str] = None

    def __post_init__(self):
        """Validate descriptor fields."""
        if self.pointer_width not in (32, 64):
            raise UnsupportedToolchainError(
                f"Invalid pointer width: {self.pointer_width} (expected 32 or 64)"
            )
        if not re.match(r"^\d+(\.\d+)*", self.version):
            raise UnsupportedToolchainError(
                f"Invalid version format: {self.version}. "
                "Expected format like '18.1.8' or '13.2.0'"
            )

    @classmethod
    def from_compiler_id(
        cls,
        compiler_id: str,
        version: str,
        system_name: str,
        processor: str,
        pointer_width: int = 64,
        compiler: Optional[str] = None,
    ) -> "ToolchainDescriptor":
        """Build a descriptor from CMake-style identification strings."""
        return cls(
            vendor=CompilerVendor.from_id(compiler_id),
            version=version,
            system_name=system_name,
            processor=processor,
            pointer_width=pointer_width,
            compiler=compiler,
        )

    @property
    def is_gnu_like(self) -> bool:
        """True for GCC and every Clang flavour (``MATCHES "GNU|Clang"``)."""
        return self.vendor in (
            CompilerVendor.GNU,
            CompilerVendor.CLANG,
            CompilerVendor.APPLE_CLANG,
        )

    @property
    def is_clang_family(self) -> bool:
        """True for upstream Clang and Apple Clang."""
        return self.vendor in (CompilerVendor.CLANG, CompilerVendor.APPLE_CLANG)

    @property
    def arch_family(self) -> str:
        """
        CPU family: 'x86', 'aarch64', 'arm', or the lowercased processor.
        """
        if _X86_PATTERN.match(self.processor):
            return "x86"
        if _AARCH64_PATTERN.match(self.processor):
            return "aarch64"
        if self.processor.lower().startswith("arm"):
            return "arm"
        return self.processor.lower()

    @property
    def version_tuple(self) -> Tuple[int, ...]:
        """Numeric version components (e.g., (13, 2, 0))."""
        match = re.match(r"^(\d+(?:\.\d+)*)", self.version)
        return tuple(int(part) for part in match.group(1).split("."))

    def version_at_least(self, minimum: str) -> bool:
        """
        Compare compiler version against a minimum (``VERSION_GREATER_EQUAL``).

        Missing components count as zero, so '8' equals '8.0.0'.
        """
        have = ".".join(str(part) for part in self.version_tuple)
        return Version(have) >= Version(minimum)

    def fingerprint(self) -> str:
        """
        Stable identity of this toolchain, used to invalidate persisted probes.

        Returns:
            Hex sha256 digest over every descriptor field
        """
        payload = json.dumps(
            {
                "vendor": self.vendor.value,
                "version": self.version,
                "system_name": self.system_name,
                "processor": self.processor,
                "pointer_width": self.pointer_width,
                "compiler": self.compiler or "",
            },
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def __str__(self) -> str:
        return (
            f"{self.vendor.value} {self.version} "
            f"({self.system_name}-{self.processor}, {self.pointer_width}-bit)"
        )


# Version banners, checked in order (Apple first since it also says "clang")
_BANNERS = [
    (
        CompilerVendor.APPLE_CLANG,
        re.compile(r"Apple (?:LLVM|clang) version (\d+(?:\.\d+)*)"),
    ),
    (CompilerVendor.CLANG, re.compile(r"clang version (\d+(?:\.\d+)*)")),
    (
        CompilerVendor.MSVC,
        re.compile(
            r"Microsoft \(R\) C/C\+\+ Optimizing Compiler Version (\d+(?:\.\d+)*)"
        ),
    ),
    (
        CompilerVendor.GNU,
        re.compile(
            r"^\S*(?:gcc|g\+\+|c\+\+|cc)(?:-\d+)?\s.*?\)\s+(\d+(?:\.\d+)*)",
            re.MULTILINE,
        ),
    ),
    (CompilerVendor.GNU, re.compile(r"Free Software Foundation")),
]


def parse_version_banner(output: str) -> Tuple[CompilerVendor, str]:
    """
    Identify vendor and version from ``--version`` output.

    Args:
        output: Combined stdout/stderr of the compiler

    Returns:
        Tuple of (vendor, version); version is '0' when not found

    Example:
        >>> parse_version_banner("clang version 18.1.8 (https://github.com/llvm)")
        (<CompilerVendor.CLANG: 'Clang'>, '18.1.8')
    """
    for vendor, pattern in _BANNERS:
        match = pattern.search(output)
        if match:
            version = match.group(1) if match.groups() else _first_version(output)
            return vendor, version
    return CompilerVendor.OTHER, _first_version(output)


def _first_version(output: str) -> str:
    match = re.search(r"\b(\d+\.\d+(?:\.\d+)?)\b", output)
    return match.group(1) if match else "0"


def host_defaults() -> dict:
    """Host OS name, processor and pointer width."""
    return {
        "system_name": platform.system(),
        "processor": platform.machine(),
        "pointer_width": struct.calcsize("P") * 8,
    }


def version_command(compiler: str) -> List[str]:
    """
    Command that makes a compiler print its version banner.

    MSVC's ``cl`` rejects ``--version`` and prints the banner when run bare.

    Example:
        >>> version_command("cl")
        ['cl']
        >>> version_command("g++-13")
        ['g++-13', '--version']
    """
    if PureWindowsPath(compiler).name.lower() in ("cl", "cl.exe"):
        return [compiler]
    return [compiler, "--version"]


def detect_toolchain(
    compiler: str = "c++",
    system_name: Optional[str] = None,
    processor: Optional[str] = None,
    pointer_width: Optional[int] = None,
    timeout: int = 10,
) -> ToolchainDescriptor:
    """
    Detect a toolchain descriptor from a compiler executable and the host.

    Args:
        compiler: Compiler executable (name on PATH or absolute path)
        system_name: Target OS override (default: host ``platform.system()``)
        processor: Target CPU override (default: host ``platform.machine()``)
        pointer_width: Pointer width override (default: host pointer size)
        timeout: Seconds to wait for ``--version``

    Returns:
        ToolchainDescriptor for the compiler

    Raises:
        ToolchainDetectionError: If the compiler cannot be run or identified
    """
    command = version_command(compiler)
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise ToolchainDetectionError(compiler, f"timed out after {timeout}s") from e
    except OSError as e:
        raise ToolchainDetectionError(compiler, str(e)) from e

    # cl.exe prints its banner on stderr
    output = f"{result.stdout}\n{result.stderr}"
    vendor, version = parse_version_banner(output)
    if vendor == CompilerVendor.OTHER and result.returncode != 0:
        raise ToolchainDetectionError(
            compiler, f"{' '.join(command)} exited with code {result.returncode}"
        )

    host = host_defaults()
    descriptor = ToolchainDescriptor(
        vendor=vendor,
        version=version,
        system_name=system_name or host["system_name"],
        processor=processor or host["processor"],
        pointer_width=pointer_width or host["pointer_width"],
        compiler=compiler,
    )
    logger.debug(f"Detected toolchain: {descriptor}")
    return descriptor
