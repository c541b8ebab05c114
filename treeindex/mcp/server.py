"""Treeindex MCP server. Exposes forest queries and edits as tools for AI agents."""

from __future__ import annotations

import functools
import logging
import os
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from treeindex.client import Forest

# All logging goes to stderr; stdout is reserved for JSON-RPC
logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger("treeindex.mcp")

# ---------------------------------------------------------------------------
# Client singleton, safe for single-process stdio MCP
# ---------------------------------------------------------------------------

_CLIENT: Forest | None = None


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    global _CLIENT
    records_path = os.environ.get("TREEINDEX_RECORDS_PATH", "records.json")
    if Path(records_path).exists():
        logger.info("Loading records file: %s", records_path)
        _CLIENT = Forest.from_file(records_path)
    else:
        logger.info("Records file %s not found, starting empty", records_path)
        _CLIENT = Forest(path=records_path)
    try:
        yield {}
    finally:
        _CLIENT = None


mcp = FastMCP(
    "Treeindex",
    instructions=(
        "Treeindex is an in-memory forest of records. "
        "Each record has an `id` and an optional `parent` id; other fields are free-form. "
        "Removing a record also removes its whole subtree. "
        "Updating a record with a different `parent` moves it together with its subtree. "
        "Ancestors are returned nearest parent first; paths run from the root down."
    ),
    lifespan=app_lifespan,
)


def _get_client() -> Forest:
    """Return the active Forest."""
    if _CLIENT is None:
        raise RuntimeError("Treeindex forest is not initialized")
    return _CLIENT


def _persist(forest: Forest) -> None:
    """Write back to the records file when the forest has one."""
    if forest.path_on_disk:
        forest.save()


def _safe_tool(fn: Callable[..., dict]) -> Callable[..., dict]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> dict:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Tool %s failed", fn.__name__)
            return {"error": True, "message": f"{type(exc).__name__}: {exc}"}
    return wrapper


def _record_dict(record: Any) -> dict:
    return record.model_dump()


# ===================================================================
# Query tools (5)
# ===================================================================


@mcp.tool()
@_safe_tool
def get_record(id: str | int) -> dict:
    """Get a record by its ID.

    Args:
        id: The record ID to look up.
    """
    forest = _get_client()
    record = forest.get(id)
    if record is None:
        return {"found": False, "id": id}
    return _record_dict(record)


@mcp.tool()
@_safe_tool
def get_children(id: str | int) -> dict:
    """Get the direct children of a record, in insertion order.

    Args:
        id: The parent record ID.
    """
    forest = _get_client()
    results = forest.children(id)
    return {"count": len(results), "records": [_record_dict(r) for r in results]}


@mcp.tool()
@_safe_tool
def get_descendants(id: str | int) -> dict:
    """Get every record below a record, depth-first pre-order.

    Args:
        id: The record whose subtree to list.
    """
    forest = _get_client()
    results = forest.descendants(id)
    return {"count": len(results), "records": [_record_dict(r) for r in results]}


@mcp.tool()
@_safe_tool
def get_ancestors(id: str | int) -> dict:
    """Get the parent chain of a record, nearest parent first, excluding the record.

    Args:
        id: The record whose ancestors to list.
    """
    forest = _get_client()
    results = forest.ancestors(id)
    return {"count": len(results), "records": [_record_dict(r) for r in results]}


@mcp.tool()
@_safe_tool
def get_path(id: str | int) -> dict:
    """Get the materialized path of a record: IDs from the root down to it.

    Args:
        id: The record ID.
    """
    forest = _get_client()
    path = forest.path(id)
    if not path:
        return {"found": False, "id": id}
    return {"id": id, "path": path, "level": len(path) - 1}


# ===================================================================
# Mutation tools (3)
# ===================================================================


@mcp.tool()
@_safe_tool
def add_record(
    id: str | int,
    parent: str | int | None = None,
    properties: dict[str, Any] | None = None,
) -> dict:
    """Add a record to the forest.

    Args:
        id: Unique record identifier.
        parent: Optional parent record ID.
        properties: Free-form payload fields stored on the record.
    """
    forest = _get_client()
    added = forest.add({**(properties or {}), "id": id, "parent": parent})
    if not added:
        return {"added": False, "id": id, "reason": "duplicate id"}
    _persist(forest)
    return {"added": True, "record": _record_dict(forest.get(id))}


@mcp.tool()
@_safe_tool
def remove_record(id: str | int) -> dict:
    """Remove a record and its whole subtree (cascade).

    Args:
        id: The record ID to remove.
    """
    forest = _get_client()
    removed_count = len(forest.descendants(id)) + 1
    removed = forest.remove(id)
    if removed:
        _persist(forest)
    return {"removed": removed, "records_removed": removed_count if removed else 0}


@mcp.tool()
@_safe_tool
def update_record(
    id: str | int,
    parent: str | int | None = None,
    properties: dict[str, Any] | None = None,
) -> dict:
    """Replace a record's payload and parent. A changed parent moves the subtree.

    Args:
        id: The record ID to update.
        parent: New parent ID, or null to make it a root.
        properties: Replacement payload fields.
    """
    forest = _get_client()
    updated = forest.update({**(properties or {}), "id": id, "parent": parent})
    if not updated:
        return {"updated": False, "id": id, "reason": "unknown id"}
    _persist(forest)
    return {"updated": True, "record": _record_dict(forest.get(id)), "path": forest.path(id)}


@mcp.tool()
@_safe_tool
def get_stats() -> dict:
    """Get forest statistics."""
    forest = _get_client()
    stats = forest.stats()
    return stats.model_dump()


# ===================================================================
# Resources (1)
# ===================================================================


@mcp.resource("treeindex://stats")
def stats_resource() -> str:
    """Live forest statistics."""
    if _CLIENT is None:
        raise RuntimeError("Treeindex forest is not initialized")
    stats = _CLIENT.stats()
    lines = [
        "# Treeindex Statistics\n",
        f"Records: {stats.record_count}",
        f"Roots: {stats.root_count}",
        f"Dangling parents: {stats.dangling_count}",
        f"Max depth: {stats.max_depth}",
    ]
    return "\n".join(lines)


# ===================================================================
# Entry point
# ===================================================================


def run_server() -> None:
    """Run the Treeindex MCP server over stdio."""
    mcp.run(transport="stdio")
