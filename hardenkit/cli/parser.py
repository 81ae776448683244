"""
HardenKit CLI argument parser.

This module implements the command-line interface for HardenKit using argparse.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import List, Optional

from hardenkit.core.exceptions import HardenKitError

# Get version from package
try:
    from importlib.metadata import version

    __version__ = version("hardenkit")
except Exception:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)


class CLI:
    """HardenKit command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="hardenkit",
            description="HardenKit - compiler hardening and LTO flag composition",
            epilog='Use "hardenkit COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"HardenKit {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--config",
            type=Path,
            metavar="PATH",
            help="Path to configuration file (default: ./hardenkit.yaml)",
        )

        # Subcommands
        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_harden_command(subparsers)
        self._add_ipo_command(subparsers)
        self._add_cache_command(subparsers)

        return parser

    @staticmethod
    def _add_toolchain_arguments(parser):
        """Toolchain selection shared by 'harden' and 'ipo'."""
        group = parser.add_argument_group("toolchain")
        group.add_argument(
            "--compiler",
            metavar="EXE",
            help="Compiler executable to detect (default: probe.compiler from config)",
        )
        group.add_argument(
            "--vendor",
            metavar="ID",
            help="Compiler id instead of detection (GNU, Clang, AppleClang, MSVC)",
        )
        group.add_argument(
            "--compiler-version",
            dest="compiler_version",
            metavar="VER",
            help="Compiler version (with --vendor)",
        )
        group.add_argument(
            "--system", metavar="NAME", help="Target OS name (e.g., Linux, Darwin)"
        )
        group.add_argument(
            "--processor", metavar="CPU", help="Target processor (e.g., x86_64, arm64)"
        )
        group.add_argument(
            "--pointer-width",
            type=int,
            choices=[32, 64],
            metavar="BITS",
            help="Pointer width in bits (32|64)",
        )
        parser.add_argument(
            "--no-cache",
            action="store_true",
            help="Probe every flag afresh and do not record results",
        )
        parser.add_argument(
            "--format",
            choices=["text", "json"],
            default="text",
            help="Output format (default: text)",
        )

    def _add_harden_command(self, subparsers):
        """Add 'harden' subcommand."""
        parser = subparsers.add_parser(
            "harden",
            help="Show hardening flags for a target",
            description="Compose the hardening flags a target of the given kind receives",
        )
        parser.add_argument(
            "--kind",
            choices=["executable", "shared", "static", "module", "object"],
            default="executable",
            help="Target kind (default: executable)",
        )
        parser.add_argument(
            "--name", default="app", metavar="NAME", help="Target name (default: app)"
        )
        parser.add_argument(
            "--full",
            action="store_true",
            help="Enable full hardening (speculative-execution mitigations)",
        )
        self._add_toolchain_arguments(parser)

    def _add_ipo_command(self, subparsers):
        """Add 'ipo' subcommand."""
        parser = subparsers.add_parser(
            "ipo",
            help="Check IPO/LTO support and show scope flags",
            description="Run the IPO support check and compose project-wide LTO flags",
        )
        parser.add_argument(
            "--thin", action="store_true", help="Prefer ThinLTO / parallel LTO"
        )
        parser.add_argument(
            "--lto-cache",
            type=Path,
            metavar="BINARY_DIR",
            help="Also set up the LTO cache under this build directory",
        )
        self._add_toolchain_arguments(parser)

    def _add_cache_command(self, subparsers):
        """Add 'cache' subcommand."""
        parser = subparsers.add_parser(
            "cache",
            help="Inspect or clear the probe cache",
            description="Show or clear the persistent probe cache",
        )
        parser.add_argument("action", choices=["show", "clear"], help="show | clear")
        parser.add_argument(
            "--format",
            choices=["text", "json"],
            default="text",
            help="Output format for 'show' (default: text)",
        )

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        self._configure_logging(parsed_args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130
        except HardenKitError as e:
            logger.error(f"Error: {e}")
            return 1

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        command_map = {
            "harden": "hardenkit.cli.commands.harden",
            "ipo": "hardenkit.cli.commands.ipo",
            "cache": "hardenkit.cli.commands.cache",
        }

        module_name = command_map.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return 1

        module = importlib.import_module(module_name)
        return module.run(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
