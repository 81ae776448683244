"""
IPO command implementation.

Runs the IPO/LTO support check and prints the project-wide LTO flags.
"""

import json
import logging
from dataclasses import replace

from hardenkit.cli.utils import load_settings, open_cache, resolve_toolchain, safe_print
from hardenkit.engine.ipo import IPO_PROPERTY, IPOManager
from hardenkit.engine.targets import BuildScope

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the ipo command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 when IPO is enabled, 1 when unsupported)
    """
    config = load_settings(args)
    toolchain = resolve_toolchain(args, config)
    modes = config.modes.to_modes()
    if args.thin:
        modes = replace(modes, ipo_thin=True)
    cache = open_cache(config, no_cache=args.no_cache)

    scope = BuildScope()
    manager = IPOManager(toolchain, cache, modes)
    report = manager.enable_ipo(scope)
    if report.enabled and args.lto_cache:
        manager.setup_lto_cache(scope, args.lto_cache)

    if args.format == "json":
        payload = report.to_dict()
        payload["properties"] = scope.properties()
        safe_print(json.dumps(payload, indent=2))
        return 0 if report.enabled else 1

    safe_print(f"Toolchain: {toolchain}")
    safe_print(f"{IPO_PROPERTY}: {'ON' if report.enabled else 'OFF'}")
    if not report.enabled:
        if report.reason:
            safe_print(f"Reason: {report.reason}")
        return 1

    safe_print(f"Variant: {report.variant}{' (forced)' if report.forced else ''}")
    for property_name in ("COMPILE_OPTIONS", "LINK_OPTIONS"):
        safe_print(f"{property_name}:")
        for flag in scope.get_property(property_name) or []:
            safe_print(f"  {flag}")
    return 0
