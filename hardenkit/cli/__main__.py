"""
Entry point for running HardenKit CLI as a module.

Usage: python -m hardenkit.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
