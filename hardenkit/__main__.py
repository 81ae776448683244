"""
Entry point for running HardenKit as a module.

Usage: python -m hardenkit [command] [options]
"""

from hardenkit.cli.parser import main

if __name__ == "__main__":
    main()
