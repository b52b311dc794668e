"""Data loading utilities for configuration and snapshot files.

Consistent UTF-8 JSON reads and writes, including the polymorphic
dimension configuration format and crash-safe (atomic) writes used
for pre-persistence snapshots.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def load_json_file(path: Path | str) -> dict[str, Any] | list[Any]:
    """Load a JSON file with UTF-8 encoding.

    Args:
        path: Path to the JSON file.

    Returns:
        The parsed JSON content (dict or list).

    Raises:
        FileNotFoundError: If the file doesn't exist.
        json.JSONDecodeError: If the file contains invalid JSON.
    """
    path = Path(path)
    with path.open(encoding="utf-8") as f:
        return json.load(f)


def save_json_file(
    data: Any,
    path: Path | str,
    ensure_ascii: bool = False,
    indent: int = 2,
) -> None:
    """Atomically save data to a JSON file (temp file + rename).

    A reader never observes a half-written file: either the previous
    content (or nothing) or the complete new content.

    Args:
        data: The data to serialize.
        path: Output file path.
        ensure_ascii: If True, escape non-ASCII characters. Defaults to False.
        indent: Indentation level for pretty-printing. Defaults to 2.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(
                data, f, ensure_ascii=ensure_ascii, indent=indent,
                default=str,
            )
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def load_dimensions_file(
    path: Path | str,
) -> tuple[list[dict[str, Any]], dict[str, Any]]:
    """Load a dimensions JSON file, handling both list and dict formats.

    The file can be either:
    - A list of dimension dicts: [{"id": "causal_analysis", ...}, ...]
    - A dict with a "dimensions" key: {"metadata": {...}, "dimensions": [...]}

    Args:
        path: Path to the dimensions JSON file.

    Returns:
        Tuple of (dimensions_list, metadata_dict).
        If the file is a plain list, metadata_dict will be empty.
    """
    data = load_json_file(path)

    if isinstance(data, list):
        return data, {}
    return data.get("dimensions", []), data.get("metadata", {})
