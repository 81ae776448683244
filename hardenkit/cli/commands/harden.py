"""
Harden command implementation.

Composes the hardening flags a target of the given kind receives from the
selected toolchain and prints them.
"""

import json
import logging
from dataclasses import replace

from hardenkit.cli.utils import load_settings, open_cache, resolve_toolchain, safe_print
from hardenkit.core.interfaces import TargetKind
from hardenkit.engine.harden import Hardener, setup_hardening
from hardenkit.engine.targets import Target

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the harden command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    config = load_settings(args)
    toolchain = resolve_toolchain(args, config)
    modes = config.modes.to_modes()
    if args.full:
        modes = replace(modes, hardening_full=True)
    cache = open_cache(config, no_cache=args.no_cache)

    setup_hardening(modes)
    target = Target(args.name, TargetKind.from_name(args.kind))
    report = Hardener(toolchain, cache, modes).harden(target)

    if args.format == "json":
        payload = report.to_dict()
        payload["properties"] = target.properties()
        payload["cache"] = cache.stats()
        safe_print(json.dumps(payload, indent=2))
        return 0

    safe_print(f"Toolchain: {toolchain}")
    safe_print(f"Target:    {target.name} ({target.kind.value})")
    if not report.supported:
        safe_print("No hardening rules for this compiler")
        return 0

    for property_name in ("COMPILE_OPTIONS", "LINK_OPTIONS", "COMPILE_DEFINITIONS"):
        flags = target.get_property(property_name) or []
        safe_print(f"{property_name}:")
        for flag in flags:
            safe_print(f"  {flag}")

    stats = cache.stats()
    logger.debug(
        f"Probe cache: {stats['hits']} hit(s), {stats['misses']} miss(es), "
        f"{stats['probes']} probe(s)"
    )
    return 0
