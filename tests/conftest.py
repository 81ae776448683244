"""
Pytest configuration and shared fixtures for HardenKit tests.
"""

import pytest

# Import test fixtures to make them available to all tests
# These imports register the fixtures with pytest's fixture discovery system
# ruff: noqa: F401
from tests.fixtures.toolchains import (
    gcc_linux_x86_64,
    gcc7_linux_x86_64,
    clang_linux_aarch64,
    clang_linux_x86_64,
    apple_clang_macos_arm64,
    msvc_windows_x64,
    mingw_windows_x64,
    unknown_compiler,
)
from tests.utils.mocks import ScriptedProbe, ScriptedIPOCheck


@pytest.fixture
def accept_all_probe() -> ScriptedProbe:
    """Probe that accepts every flag."""
    return ScriptedProbe()


@pytest.fixture
def config_file(tmp_path):
    """Write a hardenkit.yaml into tmp_path and return a writer function."""

    def write(content: str):
        path = tmp_path / "hardenkit.yaml"
        path.write_text(content)
        return path

    return write


@pytest.fixture(autouse=True)
def clean_mode_env(monkeypatch):
    """Keep HARDENKIT_* mode overrides from leaking into tests."""
    monkeypatch.delenv("HARDENKIT_HARDENING_FULL", raising=False)
    monkeypatch.delenv("HARDENKIT_IPO_THIN", raising=False)
