"""
Probe result cache.

Maps ``(kind, category, flag)`` to the probe verdict so repeated
configuration runs do not re-run trial compiles. Results are valid for one
toolchain identity: when a different toolchain shows up, every entry is
dropped. The cache can be purely in-memory or backed by a JSON file shared
between runs (and processes), guarded by a file lock and written atomically.

Example:
    >>> cache = ProbeCache(CompilerFlagProbe(), cache_path=Path("build/probe-cache.json"))
    >>> cache.get_or_compute("-fstack-protector-strong", FlagCategory.COMPILE, toolchain)
    True
"""

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from filelock import FileLock, Timeout

from hardenkit.core.exceptions import (
    CacheKeyCollisionError,
    ProbeCacheError,
    ProbeCacheLockTimeout,
)
from hardenkit.core.filesystem import atomic_write, read_json
from hardenkit.core.toolchain import ToolchainDescriptor
from hardenkit.probe.capability import CapabilityProbe
from hardenkit.rules.model import FlagCategory

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1

# Mnemonic escapes; none start with "x" so hex escapes stay distinct
_ESCAPES = {
    "=": "eq",
    ",": "comma",
    "-": "dash",
    "+": "plus",
    ".": "dot",
    "/": "slash",
    ":": "colon",
    "_": "us",
    " ": "sp",
}


def normalize_flag(flag: str) -> str:
    """
    Turn a flag into an identifier-safe string without losing information.

    Alphanumerics are kept; every other character becomes a delimited
    ``_name_`` token, so two distinct flags never produce the same result.

    Args:
        flag: Literal flag text

    Returns:
        Identifier-safe encoding of the flag

    Example:
        >>> normalize_flag("-Wl,-z,relro")
        '_dash_Wl_comma__dash_z_comma_relro'
    """
    parts = []
    for char in flag:
        if char.isascii() and char.isalnum():
            parts.append(char)
        elif char in _ESCAPES:
            parts.append(f"_{_ESCAPES[char]}_")
        else:
            parts.append(f"_x{ord(char):x}_")
    return "".join(parts)


def cache_key(flag: str, category: FlagCategory, kind: str = "HARDENING") -> str:
    """
    Cache key for one probe.

    Example:
        >>> cache_key("-fPIC", FlagCategory.COMPILE)
        'SUPPORTS_HARDENING_COMPILE_OPTIONS__dash_fPIC'
    """
    return f"SUPPORTS_{kind}_{category.value}_{normalize_flag(flag)}"


@dataclass
class CacheEntry:
    """One recorded probe verdict."""

    key: str
    flag: str
    category: str
    accepted: bool


class ProbeCache:
    """
    Run-scoped (optionally persistent) store of probe verdicts.

    Attributes:
        probe: Probe used on cache misses
        cache_path: JSON file backing the cache, or None for memory only
        enabled: False forces a fresh probe on every call ("no-cache" mode)
        lock_timeout: Seconds to wait for the cache file lock
    """

    def __init__(
        self,
        probe: CapabilityProbe,
        cache_path: Optional[Path] = None,
        enabled: bool = True,
        lock_timeout: int = 30,
    ):
        self.probe = probe
        self.cache_path = Path(cache_path) if cache_path is not None else None
        self.enabled = enabled
        self.lock_timeout = lock_timeout

        self._entries: Dict[str, CacheEntry] = {}
        self._fingerprint: Optional[str] = None
        self._loaded = False
        self._mutex = threading.RLock()

        self._hits = 0
        self._misses = 0
        self._probes = 0

        logger.debug(
            f"Initialized probe cache (enabled={enabled}, path={self.cache_path})"
        )

    @property
    def lock_path(self) -> Optional[Path]:
        if self.cache_path is None:
            return None
        return self.cache_path.with_name(self.cache_path.name + ".lock")

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_or_compute(
        self,
        flag: str,
        category: FlagCategory,
        toolchain: ToolchainDescriptor,
        kind: str = "HARDENING",
        use_cache: Optional[bool] = None,
    ) -> bool:
        """
        Return the verdict for a flag, probing only on a miss.

        Args:
            flag: Literal flag text (non-empty)
            category: Property category the flag is tested for
            toolchain: Active toolchain
            kind: Cache namespace ('HARDENING', 'IPO')
            use_cache: Override for this call; False forces a fresh probe

        Returns:
            True if the toolchain accepts the flag

        Raises:
            ValueError: If flag is empty
            CacheKeyCollisionError: If the key is already taken by another flag
        """
        if not flag:
            raise ValueError("flag must be a non-empty string")

        def compute() -> bool:
            return self._run_probe(flag, category, toolchain)

        return self.remember(
            cache_key(flag, category, kind),
            toolchain,
            compute,
            flag=flag,
            category=category.value,
            use_cache=use_cache,
        )

    def remember(
        self,
        key: str,
        toolchain: ToolchainDescriptor,
        compute: Callable[[], bool],
        flag: Optional[str] = None,
        category: str = "",
        use_cache: Optional[bool] = None,
    ) -> bool:
        """
        Generic memoization of a boolean toolchain check under ``key``.

        Used directly for checks that are not single-flag probes (such as
        the global IPO support check).
        """
        if use_cache is None:
            use_cache = self.enabled
        else:
            use_cache = use_cache and self.enabled

        if not use_cache:
            self._probes += 1
            return bool(compute())

        flag = flag if flag is not None else key

        with self._mutex:
            self._bind_toolchain(toolchain)

            entry = self._entries.get(key)
            if entry is not None:
                if entry.flag != flag:
                    raise CacheKeyCollisionError(key, entry.flag, flag)
                self._hits += 1
                logger.debug(f"Probe cache hit: {key} = {entry.accepted}")
                return entry.accepted

            self._misses += 1
            self._probes += 1
            accepted = bool(compute())
            self._entries[key] = CacheEntry(
                key=key, flag=flag, category=category, accepted=accepted
            )
            logger.debug(f"Probe cache store: {key} = {accepted}")
            self._persist()
            return accepted

    def is_cached(
        self, flag: str, category: FlagCategory, kind: str = "HARDENING"
    ) -> bool:
        """True if a verdict for this flag is recorded."""
        with self._mutex:
            self._ensure_loaded()
            return cache_key(flag, category, kind) in self._entries

    def _run_probe(
        self, flag: str, category: FlagCategory, toolchain: ToolchainDescriptor
    ) -> bool:
        """Run the probe; any failure counts as rejection."""
        try:
            accepted = bool(self.probe.probe(flag, category, toolchain))
        except Exception as e:
            logger.debug(f"Probe for {flag} failed, treating as unsupported: {e}")
            return False
        logger.debug(
            f"Probe {flag} ({category.name}): "
            f"{'supported' if accepted else 'unsupported'}"
        )
        return accepted

    # ------------------------------------------------------------------
    # Toolchain identity
    # ------------------------------------------------------------------

    def _bind_toolchain(self, toolchain: ToolchainDescriptor) -> None:
        """Attach the cache to a toolchain, dropping entries for any other one."""
        self._ensure_loaded()
        fingerprint = toolchain.fingerprint()

        if self._fingerprint is None:
            self._fingerprint = fingerprint
            return

        if self._fingerprint != fingerprint:
            logger.info(
                f"Toolchain changed ({toolchain}), invalidating "
                f"{len(self._entries)} cached probe result(s)"
            )
            self._entries.clear()
            self._fingerprint = fingerprint
            self._persist(replace=True)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @contextmanager
    def _file_lock(self):
        """
        Exclusive lock on the cache file.

        Raises:
            ProbeCacheLockTimeout: If lock cannot be acquired within timeout
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(self.lock_path, timeout=self.lock_timeout)

        try:
            with lock:
                logger.debug("Acquired probe cache lock")
                yield
            logger.debug("Released probe cache lock")
        except Timeout as e:
            raise ProbeCacheLockTimeout(
                f"Could not acquire probe cache lock within {self.lock_timeout} seconds"
            ) from e

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if self.cache_path is None:
            return

        with self._file_lock():
            data = read_json(self.cache_path)

        if data is None:
            return
        if data.get("version") != CACHE_FORMAT_VERSION:
            logger.warning(
                f"Ignoring probe cache {self.cache_path}: "
                f"unsupported format version {data.get('version')}"
            )
            return

        self._fingerprint = data.get("toolchain")
        self._entries = self._decode_entries(data.get("entries", {}))
        logger.debug(
            f"Loaded {len(self._entries)} probe result(s) from {self.cache_path}"
        )

    @staticmethod
    def _decode_entries(raw: Dict) -> Dict[str, CacheEntry]:
        entries = {}
        if not isinstance(raw, dict):
            return entries
        for key, value in raw.items():
            try:
                entries[key] = CacheEntry(
                    key=key,
                    flag=str(value["flag"]),
                    category=str(value.get("category", "")),
                    accepted=bool(value["accepted"]),
                )
            except (KeyError, TypeError):
                logger.warning(f"Skipping malformed probe cache entry: {key}")
        return entries

    def _persist(self, replace: bool = False) -> None:
        """
        Write entries to the cache file.

        Entries another process already recorded for the same toolchain take
        precedence over ours (first writer wins).

        Args:
            replace: Discard whatever is on disk instead of merging

        Raises:
            ProbeCacheError: If the file cannot be written
        """
        if self.cache_path is None:
            return

        with self._file_lock():
            if not replace:
                on_disk = read_json(self.cache_path) or {}
                if (
                    on_disk.get("version") == CACHE_FORMAT_VERSION
                    and on_disk.get("toolchain") == self._fingerprint
                ):
                    self._entries.update(
                        self._decode_entries(on_disk.get("entries", {}))
                    )

            payload = {
                "version": CACHE_FORMAT_VERSION,
                "toolchain": self._fingerprint,
                "entries": {
                    key: {
                        "flag": entry.flag,
                        "category": entry.category,
                        "accepted": entry.accepted,
                    }
                    for key, entry in sorted(self._entries.items())
                },
            }

            try:
                atomic_write(self.cache_path, json.dumps(payload, indent=2))
            except OSError as e:
                logger.error(f"Failed to save probe cache: {e}")
                raise ProbeCacheError(f"Failed to save probe cache: {e}") from e

    # ------------------------------------------------------------------
    # Introspection / maintenance
    # ------------------------------------------------------------------

    def entries(self) -> List[CacheEntry]:
        """All recorded entries, sorted by key."""
        with self._mutex:
            self._ensure_loaded()
            return [self._entries[key] for key in sorted(self._entries)]

    def stats(self) -> Dict:
        """
        Cache statistics.

        Returns:
            Dictionary with hits, misses, probes, entries and accepted counts
        """
        with self._mutex:
            self._ensure_loaded()
            return {
                "hits": self._hits,
                "misses": self._misses,
                "probes": self._probes,
                "entries": len(self._entries),
                "accepted": sum(1 for e in self._entries.values() if e.accepted),
            }

    def clear(self) -> None:
        """Drop every entry, in memory and on disk."""
        with self._mutex:
            self._entries.clear()
            self._fingerprint = None
            self._loaded = True
            if self.cache_path is not None:
                with self._file_lock():
                    self.cache_path.unlink(missing_ok=True)
            logger.info("Cleared probe cache")

    def invalidate(
        self, flag: str, category: FlagCategory, kind: str = "HARDENING"
    ) -> bool:
        """
        Forget the verdict for one flag.

        Returns:
            True if an entry was removed
        """
        key = cache_key(flag, category, kind)
        with self._mutex:
            self._ensure_loaded()
            if self._entries.pop(key, None) is None:
                return False
            self._persist(replace=True)
            logger.debug(f"Invalidated probe cache entry: {key}")
            return True

    def to_dict(self) -> Dict:
        """Serializable view of the cache (for ``hardenkit cache show``)."""
        with self._mutex:
            self._ensure_loaded()
            return {
                "path": str(self.cache_path) if self.cache_path else None,
                "toolchain": self._fingerprint,
                "entries": [asdict(e) for e in self.entries()],
            }
