"""Atomic JSON persistence for the durable stores."""

import json
import os
import stat
import tempfile
from pathlib import Path
from typing import Any, Optional

from loguru import logger


def write_json_atomic(path: Path, data: Any, private: bool = False) -> None:
    """
    Write JSON to ``path`` atomically (temp file in the same directory + replace).

    Args:
        path: Destination file
        data: JSON-serializable data
        private: Restrict the file to the owner (0600)

    Raises:
        OSError: If the file cannot be written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", text=True)
    try:
        if private:
            os.fchmod(fd, stat.S_IRUSR | stat.S_IWUSR)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(temp_path, path)
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def read_json(path: Path, default: Optional[Any] = None) -> Any:
    """
    Read a JSON file, returning ``default`` when it is missing or corrupt.

    Args:
        path: File to read
        default: Value returned when the file cannot be used

    Returns:
        Parsed JSON or ``default``
    """
    path = Path(path)
    if not path.exists():
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable file {path}: {e}")
        return default
