"""
HardenKit - compiler hardening and link-time optimization flags for C/C++ builds.

Selects flags from declarative rule tables, keeps only what the active
toolchain accepts (trial compiles, cached per toolchain) and appends them to
build targets without disturbing flags already present.
"""
