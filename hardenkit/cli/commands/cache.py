"""
Cache command implementation.

Shows or clears the persistent probe cache.
"""

import json
import logging

from hardenkit.cli.utils import load_settings, open_cache, safe_print

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the cache command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    config = load_settings(args)
    if config.cache.path is None:
        logger.error("No probe cache path configured")
        return 1

    cache = open_cache(config)

    if args.action == "clear":
        cache.clear()
        safe_print(f"Cleared {config.cache.path}")
        return 0

    data = cache.to_dict()
    if args.format == "json":
        safe_print(json.dumps(data, indent=2))
        return 0

    safe_print(f"Cache:     {data['path']}")
    safe_print(f"Toolchain: {data['toolchain'] or '-'}")
    safe_print(f"Entries:   {len(data['entries'])}")
    for entry in data["entries"]:
        verdict = "yes" if entry["accepted"] else "no "
        safe_print(f"  [{verdict}] {entry['category']:<16} {entry['flag']}")
    return 0
