"""Test fixtures for HardenKit tests.

This package provides reusable pytest fixtures for testing HardenKit components:

- toolchains: Toolchain descriptors for the supported vendor/platform mixes

Import fixtures in your tests using:
    from tests.fixtures.toolchains import gcc_linux_x86_64
"""

__all__ = [
    "toolchains",
]
