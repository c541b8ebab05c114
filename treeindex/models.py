"""Pydantic models for the Treeindex public API.

These wrap the plain dict records used by the engine (engine.core), providing
validation at the boundary and serialization for the client-facing API.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Record(BaseModel):
    """A uniquely identified entry in the forest.

    Only ``id`` and ``parent`` are structural. Any other field is kept as
    opaque payload and passed through untouched.
    """

    model_config = ConfigDict(extra="allow")

    id: str | int
    parent: str | int | None = None

    def __repr__(self) -> str:
        parts = [f"Record({self.id!r}, parent={self.parent!r}"]
        if self.model_extra:
            parts.append(f", payload={self.model_extra!r}")
        parts.append(")")
        return "".join(parts)

    @property
    def payload(self) -> dict[str, Any]:
        """Non-structural fields of the record."""
        return dict(self.model_extra or {})


class TreeRow(BaseModel):
    """One record as seen by a tree-structured table.

    ``path`` is the materialized path (ids from the root down to this record
    inclusive) and ``level`` the number of ancestors. ``category`` is
    ``"group"`` for records with children and ``"element"`` for leaves.
    """

    id: str | int
    parent: str | int | None = None
    level: int
    has_children: bool
    category: Literal["group", "element"]
    path: list[str | int]
    data: dict[str, Any] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    """Result of an index consistency check.

    Contains a pass/fail flag, a list of errors, a list of warnings and any
    parent cycles found during validation.
    """

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    cycles: list[list[str | int]] = Field(default_factory=list)


class IndexStats(BaseModel):
    """Summary counts for a forest."""

    record_count: int
    root_count: int
    dangling_count: int
    max_depth: int
