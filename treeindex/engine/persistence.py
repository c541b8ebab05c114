"""JSON import/export for record collections.

A records file is either an object with a "records" key or a bare list:

    {"records": [{"id": 1, "parent": null, "name": "Root"}, ...]}
    [{"id": 1, "parent": null, "name": "Root"}, ...]

Saving always writes the object form. The index itself stays in memory; these
helpers only move snapshots in and out of it.

Security:
    Path validation is performed to prevent path traversal attacks.
    All paths are resolved to absolute paths and validated.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .core import HierarchyIndex, Record

FORMAT_VERSION = "1.0"


def _validate_path(path: str | Path, base_dir: Path | None = None) -> Path:
    """Validate and resolve a file path.

    Args:
        path: The path to validate
        base_dir: Optional base directory that the path must be within

    Returns:
        Resolved absolute Path

    Raises:
        ValueError: If path is invalid or attempts path traversal
    """
    path_str = str(path)
    # Check for null bytes before any path operations (common attack vector)
    if "\x00" in path_str:
        raise ValueError(f"Invalid path (contains null bytes): {path_str!r}")

    resolved = Path(path_str).resolve()

    if base_dir is not None:
        base_resolved = base_dir.resolve()
        try:
            resolved.relative_to(base_resolved)
        except ValueError:
            raise ValueError(
                f"Path traversal detected: {path_str} is outside base directory {base_dir}"
            )

    return resolved


def parse_records(data: Any) -> list[Record]:
    """Extract the record list from decoded JSON.

    Args:
        data: Either {"records": [...]} or a bare list

    Returns:
        The list of record dicts

    Raises:
        ValueError: If the structure is not a list of objects
    """
    if isinstance(data, dict):
        data = data.get("records", [])
    if not isinstance(data, list):
        raise ValueError(f"Records must be a list, got: {type(data).__name__}")
    for position, record in enumerate(data):
        if not isinstance(record, dict):
            raise ValueError(
                f"Record at position {position} must be an object, got: {type(record).__name__}"
            )
    return data


def load_records(path: str | Path, base_dir: Path | None = None) -> list[Record]:
    """Load a record list from a JSON file.

    Raises:
        ValueError: If path is invalid or the content is not a record list
        FileNotFoundError: If file does not exist
    """
    validated_path = _validate_path(path, base_dir)

    with open(validated_path, encoding="utf-8") as f:
        data = json.load(f)

    return parse_records(data)


def save_records(
    index: HierarchyIndex,
    path: str | Path,
    base_dir: Path | None = None,
) -> None:
    """Write the live records of an index to a JSON file.

    Raises:
        ValueError: If path is invalid
    """
    validated_path = _validate_path(path, base_dir)

    data = {"version": FORMAT_VERSION, **index.to_dict()}

    # Ensure parent directory exists
    validated_path.parent.mkdir(parents=True, exist_ok=True)

    with open(validated_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def load_index(path: str | Path, **kwargs: Any) -> HierarchyIndex:
    """Load a records file straight into a new HierarchyIndex.

    Keyword arguments are passed to the HierarchyIndex constructor.
    """
    return HierarchyIndex(load_records(path), **kwargs)
