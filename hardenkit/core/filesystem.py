"""
File system helpers for HardenKit.

The probe cache is shared between configuration runs (and possibly between
processes), so writes go through a temp file + rename and are never
observable half-written.
"""

import json
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    If the write fails, the original file (if any) remains unchanged.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding (used only for string content)

    Example:
        >>> atomic_write('probe-cache.json', '{"version": 1}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Temp file in the same directory keeps the rename on one filesystem
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding) as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        temp_path.replace(file_path)

    except Exception:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            logger.debug(f"Could not remove temp file {temp_path}")
        raise


def read_json(file_path: Union[str, Path]) -> Optional[Dict[str, Any]]:
    """
    Read a JSON object from disk.

    Args:
        file_path: Path to read

    Returns:
        Parsed object, or None if the file is missing, unreadable,
        or does not contain a JSON object
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return None

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable JSON file {file_path}: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Ignoring JSON file {file_path}: expected an object")
        return None
    return data
