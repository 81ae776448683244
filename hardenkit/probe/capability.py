"""
Capability probing.

A probe answers one question: does the active toolchain accept a given
flag? It runs a trial compile (or link) of a trivial program in a throwaway
directory and inspects the result. Rejection is routine, so every failure
mode (non-zero exit, diagnostic about an unknown option, timeout, missing
executable) is reported as ``False`` rather than raised.
"""

import logging
import re
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List

from hardenkit.core.toolchain import CompilerVendor, ToolchainDescriptor
from hardenkit.rules.model import FlagCategory

logger = logging.getLogger(__name__)


DEFAULT_PROBE_TIMEOUT = 30

TEST_PROGRAM = "int main() { return 0; }\n"

# Diagnostics that mean "flag ignored" even when the compiler exits with 0
FAIL_PATTERNS = [
    re.compile(p)
    for p in (
        r"[Uu]nrecognized .*option",
        r"[Uu]nknown .*option",
        r"ignoring unknown option",
        r"optimization flag .* not supported",
        r"unknown argument ignored",
        r"ignoring option",
        r"not supported",
        r"argument unused during compilation",
        r"is valid for .* but not for",
        r"-Werror=.* no option",
        r"D9002",  # MSVC: ignoring unknown option
        r"LNK4044",  # MSVC: unrecognized option, ignored
    )
]


class CapabilityProbe(ABC):
    """Decides whether a toolchain accepts a candidate flag."""

    @abstractmethod
    def probe(
        self, flag: str, category: FlagCategory, toolchain: ToolchainDescriptor
    ) -> bool:
        """
        Test one flag.

        Args:
            flag: Literal flag text
            category: COMPILE probes with a compile-only trial, LINK with a link trial
            toolchain: Active toolchain

        Returns:
            True if the toolchain accepts the flag
        """
        pass


def default_compiler(toolchain: ToolchainDescriptor) -> str:
    """Compiler executable to probe with."""
    if toolchain.compiler:
        return toolchain.compiler
    if toolchain.vendor == CompilerVendor.MSVC:
        return "cl"
    if toolchain.vendor in (CompilerVendor.CLANG, CompilerVendor.APPLE_CLANG):
        return "clang++"
    if toolchain.vendor == CompilerVendor.GNU:
        return "g++"
    return "c++"


def output_rejects_flag(output: str) -> bool:
    """True if compiler output contains a known "flag ignored" diagnostic."""
    return any(pattern.search(output) for pattern in FAIL_PATTERNS)


class CompilerFlagProbe(CapabilityProbe):
    """
    Probe flags by invoking the real compiler driver.

    Example:
        >>> probe = CompilerFlagProbe(timeout=20)
        >>> probe.probe("-fstack-protector-strong", FlagCategory.COMPILE, toolchain)
        True
    """

    def __init__(self, timeout: int = DEFAULT_PROBE_TIMEOUT):
        """
        Initialize compiler flag probe.

        Args:
            timeout: Seconds allowed per trial before the flag counts as rejected
        """
        self.timeout = timeout

    def probe(
        self, flag: str, category: FlagCategory, toolchain: ToolchainDescriptor
    ) -> bool:
        if category == FlagCategory.DEFINITION:
            # Definitions are plain -D switches; nothing to test
            return True

        compiler = default_compiler(toolchain)

        with tempfile.TemporaryDirectory(prefix="hardenkit-probe-") as tmpdir:
            tmpdir_path = Path(tmpdir)
            source_file = tmpdir_path / "probe.cpp"
            source_file.write_text(TEST_PROGRAM)

            command = self._build_command(
                compiler, flag, category, toolchain, source_file, tmpdir_path
            )
            logger.debug(f"Probing {flag} ({category.name}): {' '.join(command)}")

            try:
                result = subprocess.run(
                    command,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    cwd=tmpdir_path,
                )
            except subprocess.TimeoutExpired:
                logger.debug(f"Probe for {flag} timed out after {self.timeout}s")
                return False
            except OSError as e:
                logger.debug(f"Probe for {flag} could not run {compiler}: {e}")
                return False

        if result.returncode != 0:
            logger.debug(f"{flag} rejected (exit code {result.returncode})")
            return False

        if output_rejects_flag(f"{result.stdout}\n{result.stderr}"):
            logger.debug(f"{flag} rejected (diagnostic in compiler output)")
            return False

        return True

    def _build_command(
        self,
        compiler: str,
        flag: str,
        category: FlagCategory,
        toolchain: ToolchainDescriptor,
        source_file: Path,
        workdir: Path,
    ) -> List[str]:
        """
        Build the trial command line.

        Args:
            compiler: Compiler executable
            flag: Flag under test
            category: COMPILE or LINK
            toolchain: Active toolchain
            source_file: Trial source file
            workdir: Scratch directory for outputs

        Returns:
            Argument list for subprocess
        """
        if toolchain.vendor == CompilerVendor.MSVC:
            if category == FlagCategory.LINK:
                return [
                    compiler,
                    "/nologo",
                    str(source_file),
                    f"/Fe{workdir / 'probe.exe'}",
                    "/link",
                    flag,
                ]
            return [
                compiler,
                "/nologo",
                flag,
                "/c",
                str(source_file),
                f"/Fo{workdir / 'probe.obj'}",
            ]

        if category == FlagCategory.LINK:
            return [compiler, str(source_file), "-o", str(workdir / "probe"), flag]
        return [
            compiler,
            flag,
            "-c",
            str(source_file),
            "-o",
            str(workdir / "probe.o"),
        ]


# ============================================================================
# Whole-program optimization support check
# ============================================================================


@dataclass
class IPOCheckResult:
    """Result of the global IPO/LTO support check."""

    supported: bool
    output: str = ""


_IPO_LIBRARY_SOURCE = "int foo() { return 42; }\n"
_IPO_MAIN_SOURCE = "int foo();\nint main() { return foo() == 42 ? 0 : 1; }\n"


class IPOSupportCheck:
    """
    Check whether the toolchain can do link-time optimization at all.

    Compiles two translation units with the vendor's LTO switch and links
    them, the same shape of test CMake's ``check_ipo_supported`` uses.
    """

    def __init__(self, timeout: int = DEFAULT_PROBE_TIMEOUT):
        self.timeout = timeout

    def check(self, toolchain: ToolchainDescriptor) -> IPOCheckResult:
        """
        Run the check.

        Args:
            toolchain: Active toolchain

        Returns:
            IPOCheckResult with the compiler output as the reason on failure
        """
        if toolchain.vendor == CompilerVendor.MSVC:
            compile_flag, link_flags = "/GL", ["/link", "/LTCG"]
        elif toolchain.is_gnu_like:
            compile_flag, link_flags = "-flto", ["-flto"]
        else:
            return IPOCheckResult(
                supported=False,
                output=f"IPO is not supported for compiler id '{toolchain.vendor.value}'",
            )

        compiler = default_compiler(toolchain)
        msvc = toolchain.vendor == CompilerVendor.MSVC

        with tempfile.TemporaryDirectory(prefix="hardenkit-ipo-") as tmpdir:
            workdir = Path(tmpdir)
            (workdir / "foo.cpp").write_text(_IPO_LIBRARY_SOURCE)
            (workdir / "main.cpp").write_text(_IPO_MAIN_SOURCE)

            if msvc:
                commands = [
                    [compiler, "/nologo", compile_flag, "/c", "foo.cpp", "main.cpp"],
                    [compiler, "/nologo", "foo.obj", "main.obj", "/Feipo.exe"]
                    + link_flags,
                ]
            else:
                commands = [
                    [compiler, compile_flag, "-c", "foo.cpp", "-o", "foo.o"],
                    [compiler, compile_flag, "-c", "main.cpp", "-o", "main.o"],
                    [compiler, "foo.o", "main.o", "-o", "ipo"] + link_flags,
                ]

            for command in commands:
                try:
                    result = subprocess.run(
                        command,
                        capture_output=True,
                        text=True,
                        timeout=self.timeout,
                        cwd=workdir,
                    )
                except subprocess.TimeoutExpired:
                    return IPOCheckResult(
                        supported=False,
                        output=f"IPO check timed out after {self.timeout} seconds",
                    )
                except OSError as e:
                    return IPOCheckResult(
                        supported=False, output=f"IPO check could not run: {e}"
                    )

                if result.returncode != 0:
                    return IPOCheckResult(
                        supported=False,
                        output=(result.stderr or result.stdout).strip()[:500],
                    )

        return IPOCheckResult(supported=True)
