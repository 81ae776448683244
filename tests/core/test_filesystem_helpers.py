"""
Unit tests for file system helpers.
"""

import json

from hardenkit.core.filesystem import atomic_write, read_json


class TestAtomicWrite:
    """Test atomic file writes."""

    def test_write_text(self, tmp_path):
        """Test writing string content creates parent directories."""
        target = tmp_path / "nested" / "cache.json"

        atomic_write(target, '{"version": 1}')

        assert target.read_text() == '{"version": 1}'

    def test_write_bytes(self, tmp_path):
        """Test writing binary content."""
        target = tmp_path / "data.bin"

        atomic_write(target, b"\x00\x01")

        assert target.read_bytes() == b"\x00\x01"

    def test_overwrite_leaves_no_temp_files(self, tmp_path):
        """Test overwriting replaces content without leftovers."""
        target = tmp_path / "cache.json"
        atomic_write(target, "old")
        atomic_write(target, "new")

        assert target.read_text() == "new"
        assert [p.name for p in tmp_path.iterdir()] == ["cache.json"]


class TestReadJson:
    """Test tolerant JSON reading."""

    def test_missing_file(self, tmp_path):
        """Test missing files read as None."""
        assert read_json(tmp_path / "missing.json") is None

    def test_valid_object(self, tmp_path):
        """Test reading a JSON object."""
        path = tmp_path / "ok.json"
        path.write_text(json.dumps({"version": 1}))

        assert read_json(path) == {"version": 1}

    def test_corrupt_file(self, tmp_path):
        """Test corrupt JSON reads as None."""
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        assert read_json(path) is None

    def test_non_object(self, tmp_path):
        """Test a JSON list is rejected."""
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")

        assert read_json(path) is None
