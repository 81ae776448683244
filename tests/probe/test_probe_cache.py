"""
Unit tests for the probe cache.

Tests key normalization, memoization, persistence, toolchain invalidation
and locking.
"""

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from filelock import Timeout

from hardenkit.core.exceptions import CacheKeyCollisionError, ProbeCacheLockTimeout
from hardenkit.probe.cache import (
    CACHE_FORMAT_VERSION,
    ProbeCache,
    cache_key,
    normalize_flag,
)
from hardenkit.rules.model import FlagCategory
from tests.utils.mocks import ScriptedProbe


class TestKeyNormalization:
    """Test cache key construction."""

    def test_known_encoding(self):
        """Test mnemonic escapes."""
        assert normalize_flag("-Wl,-z,relro") == "_dash_Wl_comma__dash_z_comma_relro"

    def test_cache_key_format(self):
        """Test full key layout."""
        assert (
            cache_key("-fPIC", FlagCategory.COMPILE)
            == "SUPPORTS_HARDENING_COMPILE_OPTIONS__dash_fPIC"
        )
        assert cache_key("-flto=thin", FlagCategory.LINK, "IPO").startswith(
            "SUPPORTS_IPO_LINK_OPTIONS_"
        )

    def test_distinct_flags_distinct_keys(self):
        """Test flags differing only in punctuation never share a key."""
        flags = [
            "-ftrivial-auto-var-init=zero",
            "-ftrivial_auto_var_init=zero",
            "-ftrivial-auto-var-init-zero",
            "+ftrivial-auto-var-init=zero",
            "-mharden-sls=all",
            "-mharden-sls_all",
            "-Wl,-z,now",
            "-Wl,-z.now",
            "-fx",
            "-f_x",
        ]
        keys = {normalize_flag(flag) for flag in flags}
        assert len(keys) == len(flags)

    def test_non_ascii_escaped(self):
        """Test other characters use hex escapes."""
        assert normalize_flag("é") == "_xe9_"

    def test_category_is_part_of_key(self):
        """Test the same flag gets separate compile and link entries."""
        assert cache_key("/guard:cf", FlagCategory.COMPILE) != cache_key(
            "/guard:cf", FlagCategory.LINK
        )


class TestMemoization:
    """Test in-memory caching."""

    def test_probe_runs_once(self, gcc_linux_x86_64):
        """Test repeated lookups reuse the first verdict."""
        probe = ScriptedProbe()
        cache = ProbeCache(probe)

        for _ in range(3):
            assert cache.get_or_compute(
                "-fstack-protector-strong", FlagCategory.COMPILE, gcc_linux_x86_64
            )

        assert probe.call_count("-fstack-protector-strong") == 1
        stats = cache.stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["probes"] == 1

    def test_rejection_is_cached(self, gcc_linux_x86_64):
        """Test negative verdicts are remembered too."""
        probe = ScriptedProbe(reject={"-mretpoline"})
        cache = ProbeCache(probe)

        assert not cache.get_or_compute("-mretpoline", FlagCategory.COMPILE, gcc_linux_x86_64)
        assert not cache.get_or_compute("-mretpoline", FlagCategory.COMPILE, gcc_linux_x86_64)

        assert probe.call_count("-mretpoline") == 1
        assert cache.is_cached("-mretpoline", FlagCategory.COMPILE)

    def test_probe_error_is_rejection(self, gcc_linux_x86_64):
        """Test a crashing probe yields False instead of raising."""
        cache = ProbeCache(ScriptedProbe(error={"-fcrash"}))

        assert not cache.get_or_compute("-fcrash", FlagCategory.COMPILE, gcc_linux_x86_64)

    def test_no_cache_per_call(self, gcc_linux_x86_64):
        """Test use_cache=False probes every time and records nothing."""
        probe = ScriptedProbe()
        cache = ProbeCache(probe)

        cache.get_or_compute("-fPIE", FlagCategory.COMPILE, gcc_linux_x86_64, use_cache=False)
        cache.get_or_compute("-fPIE", FlagCategory.COMPILE, gcc_linux_x86_64, use_cache=False)

        assert probe.call_count("-fPIE") == 2
        assert not cache.is_cached("-fPIE", FlagCategory.COMPILE)

    def test_disabled_cache(self, gcc_linux_x86_64):
        """Test a disabled cache always probes."""
        probe = ScriptedProbe()
        cache = ProbeCache(probe, enabled=False)

        cache.get_or_compute("-Wall", FlagCategory.COMPILE, gcc_linux_x86_64)
        cache.get_or_compute("-Wall", FlagCategory.COMPILE, gcc_linux_x86_64)

        assert probe.call_count("-Wall") == 2
        assert cache.stats()["entries"] == 0

    def test_empty_flag(self, gcc_linux_x86_64):
        """Test empty flags are a programming error."""
        with pytest.raises(ValueError):
            ProbeCache(ScriptedProbe()).get_or_compute(
                "", FlagCategory.COMPILE, gcc_linux_x86_64
            )

    def test_toolchain_change_invalidates(self, gcc_linux_x86_64, clang_linux_x86_64):
        """Test a different toolchain never sees another toolchain's verdicts."""
        probe = ScriptedProbe()
        cache = ProbeCache(probe)

        cache.get_or_compute("-Wall", FlagCategory.COMPILE, gcc_linux_x86_64)
        cache.get_or_compute("-Wall", FlagCategory.COMPILE, clang_linux_x86_64)

        assert probe.call_count("-Wall") == 2

    def test_remember_generic_check(self, gcc_linux_x86_64):
        """Test arbitrary checks are memoized under their key."""
        cache = ProbeCache(ScriptedProbe())
        calls = []

        def compute():
            calls.append(1)
            return True

        assert cache.remember("SUPPORTS_IPO_CHECK", gcc_linux_x86_64, compute)
        assert cache.remember("SUPPORTS_IPO_CHECK", gcc_linux_x86_64, compute)
        assert len(calls) == 1

    def test_invalidate_single_entry(self, gcc_linux_x86_64):
        """Test invalidate forces a new probe for one flag."""
        probe = ScriptedProbe()
        cache = ProbeCache(probe)
        cache.get_or_compute("-Wall", FlagCategory.COMPILE, gcc_linux_x86_64)

        assert cache.invalidate("-Wall", FlagCategory.COMPILE)
        assert not cache.invalidate("-Wall", FlagCategory.COMPILE)

        cache.get_or_compute("-Wall", FlagCategory.COMPILE, gcc_linux_x86_64)
        assert probe.call_count("-Wall") == 2


class TestPersistence:
    """Test the JSON-backed cache."""

    def test_results_survive_new_instance(self, tmp_path, gcc_linux_x86_64):
        """Test a second run reuses verdicts from disk."""
        path = tmp_path / "probe-cache.json"
        ProbeCache(ScriptedProbe(reject={"-mretpoline"}), cache_path=path).get_or_compute(
            "-mretpoline", FlagCategory.COMPILE, gcc_linux_x86_64
        )

        probe = ScriptedProbe()
        cache = ProbeCache(probe, cache_path=path)
        accepted = cache.get_or_compute("-mretpoline", FlagCategory.COMPILE, gcc_linux_x86_64)

        assert accepted is False
        assert probe.calls == []

    def test_file_format(self, tmp_path, gcc_linux_x86_64):
        """Test the on-disk layout."""
        path = tmp_path / "probe-cache.json"
        ProbeCache(ScriptedProbe(), cache_path=path).get_or_compute(
            "-fPIC", FlagCategory.COMPILE, gcc_linux_x86_64
        )

        data = json.loads(path.read_text())
        assert data["version"] == CACHE_FORMAT_VERSION
        assert data["toolchain"] == gcc_linux_x86_64.fingerprint()
        entry = data["entries"]["SUPPORTS_HARDENING_COMPILE_OPTIONS__dash_fPIC"]
        assert entry == {"flag": "-fPIC", "category": "COMPILE_OPTIONS", "accepted": True}

    def test_toolchain_change_on_disk(self, tmp_path, gcc_linux_x86_64, clang_linux_x86_64):
        """Test persisted entries of another toolchain are discarded."""
        path = tmp_path / "probe-cache.json"
        ProbeCache(ScriptedProbe(), cache_path=path).get_or_compute(
            "-Wall", FlagCategory.COMPILE, gcc_linux_x86_64
        )

        probe = ScriptedProbe()
        ProbeCache(probe, cache_path=path).get_or_compute(
            "-Wall", FlagCategory.COMPILE, clang_linux_x86_64
        )

        assert probe.call_count("-Wall") == 1
        data = json.loads(path.read_text())
        assert data["toolchain"] == clang_linux_x86_64.fingerprint()
        assert len(data["entries"]) == 1

    def test_corrupt_file_starts_empty(self, tmp_path, gcc_linux_x86_64):
        """Test unreadable cache files are ignored, then rewritten."""
        path = tmp_path / "probe-cache.json"
        path.write_text("{broken")

        probe = ScriptedProbe()
        cache = ProbeCache(probe, cache_path=path)

        assert cache.get_or_compute("-Wall", FlagCategory.COMPILE, gcc_linux_x86_64)
        assert probe.call_count("-Wall") == 1
        assert json.loads(path.read_text())["version"] == CACHE_FORMAT_VERSION

    def test_first_writer_wins(self, tmp_path, gcc_linux_x86_64):
        """Test a verdict already on disk takes precedence over a later one."""
        path = tmp_path / "probe-cache.json"
        late = ProbeCache(ScriptedProbe(reject={"-Wall"}), cache_path=path)
        late.entries()  # load the (empty) file before the other writer

        ProbeCache(ScriptedProbe(), cache_path=path).get_or_compute(
            "-Wall", FlagCategory.COMPILE, gcc_linux_x86_64
        )
        late.get_or_compute("-Wall", FlagCategory.COMPILE, gcc_linux_x86_64)

        data = json.loads(path.read_text())
        key = cache_key("-Wall", FlagCategory.COMPILE)
        assert data["entries"][key]["accepted"] is True
        assert late.get_or_compute("-Wall", FlagCategory.COMPILE, gcc_linux_x86_64)

    def test_collision_detected(self, tmp_path, gcc_linux_x86_64):
        """Test a key recorded for a different flag raises."""
        path = tmp_path / "probe-cache.json"
        key = cache_key("-fPIC", FlagCategory.COMPILE)
        path.write_text(
            json.dumps(
                {
                    "version": CACHE_FORMAT_VERSION,
                    "toolchain": gcc_linux_x86_64.fingerprint(),
                    "entries": {
                        key: {
                            "flag": "-fpic",
                            "category": "COMPILE_OPTIONS",
                            "accepted": True,
                        }
                    },
                }
            )
        )

        cache = ProbeCache(ScriptedProbe(), cache_path=path)
        with pytest.raises(CacheKeyCollisionError) as exc_info:
            cache.get_or_compute("-fPIC", FlagCategory.COMPILE, gcc_linux_x86_64)

        assert exc_info.value.existing_flag == "-fpic"

    def test_clear(self, tmp_path, gcc_linux_x86_64):
        """Test clear removes memory and disk state."""
        path = tmp_path / "probe-cache.json"
        cache = ProbeCache(ScriptedProbe(), cache_path=path)
        cache.get_or_compute("-Wall", FlagCategory.COMPILE, gcc_linux_x86_64)

        cache.clear()

        assert not path.exists()
        assert cache.stats()["entries"] == 0

    def test_lock_timeout(self, tmp_path, gcc_linux_x86_64):
        """Test lock contention surfaces as ProbeCacheLockTimeout."""
        path = tmp_path / "probe-cache.json"
        cache = ProbeCache(ScriptedProbe(), cache_path=path, lock_timeout=1)

        with patch("hardenkit.probe.cache.FileLock") as mock_lock:
            mock_lock.return_value.__enter__.side_effect = Timeout(str(cache.lock_path))
            with pytest.raises(ProbeCacheLockTimeout):
                cache.get_or_compute("-Wall", FlagCategory.COMPILE, gcc_linux_x86_64)

    def test_to_dict(self, tmp_path, gcc_linux_x86_64):
        """Test the serializable view lists entries."""
        path = tmp_path / "probe-cache.json"
        cache = ProbeCache(ScriptedProbe(), cache_path=path)
        cache.get_or_compute("-Wall", FlagCategory.COMPILE, gcc_linux_x86_64)

        data = cache.to_dict()

        assert data["path"] == str(path)
        assert [entry["flag"] for entry in data["entries"]] == ["-Wall"]


class SlowProbe(ScriptedProbe):
    """Scripted probe that takes a while, widening any race window."""

    def probe(self, flag, category, toolchain):
        time.sleep(0.05)
        return super().probe(flag, category, toolchain)


class TestConcurrency:
    """Test concurrent lookups from several threads."""

    @pytest.mark.parametrize("persistent", [False, True])
    def test_same_key_probed_once(self, tmp_path, gcc_linux_x86_64, persistent):
        """Test the first writer wins and the other threads reuse its verdict."""
        probe = SlowProbe()
        cache_path = tmp_path / "probe-cache.json" if persistent else None
        cache = ProbeCache(probe, cache_path=cache_path)
        workers = 8
        barrier = threading.Barrier(workers)

        def lookup(_):
            barrier.wait()
            return cache.get_or_compute(
                "-fstack-protector-strong", FlagCategory.COMPILE, gcc_linux_x86_64
            )

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lookup, range(workers)))

        assert results == [True] * workers
        assert probe.call_count("-fstack-protector-strong") == 1
        stats = cache.stats()
        assert stats["misses"] == 1
        assert stats["hits"] == workers - 1

    def test_distinct_keys_all_recorded(self, gcc_linux_x86_64):
        """Test concurrent lookups of different flags each get an entry."""
        probe = SlowProbe(reject={"-mretpoline"})
        cache = ProbeCache(probe)
        flags = ["-Wall", "-Wextra", "-mretpoline", "-fno-common"]

        with ThreadPoolExecutor(max_workers=len(flags)) as pool:
            results = dict(
                zip(
                    flags,
                    pool.map(
                        lambda flag: cache.get_or_compute(
                            flag, FlagCategory.COMPILE, gcc_linux_x86_64
                        ),
                        flags,
                    ),
                )
            )

        assert results == {
            "-Wall": True,
            "-Wextra": True,
            "-mretpoline": False,
            "-fno-common": True,
        }
        assert len(cache.entries()) == len(flags)
        assert len(probe.calls) == len(flags)
