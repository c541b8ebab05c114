"""Treeindex client: the primary interface for working with a forest of records."""

from __future__ import annotations

from collections.abc import Generator, Iterable, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from treeindex.engine.core import Diagnostic, HierarchyIndex, RecordId
from treeindex.engine.persistence import load_records, save_records
from treeindex.models import IndexStats, Record, TreeRow, ValidationResult

# --- Conversion helpers: engine dict records <-> pydantic models ---


def _to_engine_record(record: Record | Mapping[str, Any]) -> dict[str, Any]:
    """Validate a record into the engine's dict form without raising.

    An unusable ``id`` is stripped so the engine drops or rejects the record
    with a MISSING_ID diagnostic. An unusable ``parent`` is stripped so the
    record becomes a root, the same as any unresolvable parent.
    """
    if isinstance(record, Record):
        return record.model_dump()
    raw = dict(record)
    try:
        return Record.model_validate(raw).model_dump()
    except ValidationError as exc:
        bad_fields = {err["loc"][0] for err in exc.errors() if err["loc"]}
        if "id" in bad_fields:
            raw.pop("id", None)
            return raw
        raw.pop("parent", None)
        return Record.model_validate(raw).model_dump()


def _to_model(record: dict[str, Any]) -> Record:
    return Record.model_validate(record)


class Forest:
    """A collection of parent-linked records.

    The primary interface for building, querying and reshaping a forest.
    Incoming records are validated (``id`` required, ``parent`` optional) and
    stored as plain dicts in a HierarchyIndex. Nothing here raises for a
    malformed record: one without a usable ``id`` is dropped or rejected with
    a MISSING_ID diagnostic, and an unusable ``parent`` leaves the record a
    root. Outgoing records are fresh
    ``Record`` models, so editing them never touches the index.

    Conditions the index absorbs (duplicate ids, unknown ids, parent cycles)
    are collected in ``diagnostics`` in the order they happened.

    Example:
        ```python
        forest = Forest([
            {"id": 1, "name": "Projects"},
            {"id": 2, "parent": 1, "name": "Web"},
        ])
        forest.path(2)          # [1, 2]
        forest.add({"id": 3, "parent": 2, "name": "Shop"})
        forest.descendants(1)   # [Record(2, ...), Record(3, ...)]
        ```
    """

    def __init__(
        self,
        records: Iterable[Record | Mapping[str, Any]] | None = None,
        *,
        path: str | Path | None = None,
    ) -> None:
        self._path = str(path) if path else None
        self.diagnostics: list[Diagnostic] = []
        self._index = HierarchyIndex(
            [_to_engine_record(r) for r in records or []],
            on_diagnostic=self.diagnostics.append,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> Forest:
        """Load a forest from a JSON records file.

        The path is remembered, so ``save()`` without arguments writes back
        to the same file.
        """
        return cls(load_records(path), path=path)

    @property
    def index(self) -> HierarchyIndex:
        """The underlying engine index."""
        return self._index

    @property
    def path_on_disk(self) -> str | None:
        """File this forest was loaded from, if any."""
        return self._path

    def save(self, path: str | Path | None = None) -> None:
        """Write the live records to a JSON file.

        Args:
            path: Target file. Defaults to the file the forest was loaded from.

        Raises:
            ValueError: If no path is given and the forest has none.
        """
        target = str(path) if path else self._path
        if target is None:
            raise ValueError("No path given and forest was not loaded from a file")
        save_records(self._index, target)

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._index

    @contextmanager
    def batch(self) -> Generator[None, None, None]:
        """Hold the index lock across several operations.

        Other threads see either none or all of the changes. There is no
        rollback.
        """
        with self._index.batch():
            yield

    # --- Queries ---

    def records(self) -> list[Record]:
        """All live records, in live order."""
        return [_to_model(r) for r in self._index.get_all()]

    def get(self, record_id: RecordId) -> Record | None:
        """Get a record by id, or None if not found."""
        record = self._index.get_item(record_id)
        return _to_model(record) if record is not None else None

    def children(self, record_id: RecordId) -> list[Record]:
        """Direct children of a record."""
        return [_to_model(r) for r in self._index.get_children(record_id)]

    def descendants(self, record_id: RecordId) -> list[Record]:
        """Every record below ``record_id``, depth-first pre-order."""
        return [_to_model(r) for r in self._index.get_all_descendants(record_id)]

    def ancestors(self, record_id: RecordId) -> list[Record]:
        """Parent chain of ``record_id``, nearest parent first, excluding itself."""
        return [_to_model(r) for r in self._index.get_all_ancestors(record_id)]

    def parent(self, record_id: RecordId) -> Record | None:
        """The resolved parent of a record, or None."""
        record = self._index.get_parent(record_id)
        return _to_model(record) if record is not None else None

    def roots(self) -> list[Record]:
        """Records with no resolvable parent."""
        return [_to_model(r) for r in self._index.get_roots()]

    def path(self, record_id: RecordId) -> list[RecordId]:
        """Materialized path: ids from the root down to ``record_id`` inclusive."""
        return self._index.get_path(record_id)

    def level(self, record_id: RecordId) -> int:
        """Number of ancestors of a record (roots are level 0)."""
        return self._index.get_level(record_id)

    def rows(self) -> list[TreeRow]:
        """One row per live record, in live order, for tree-table display.

        Returns:
            List of TreeRow with level, has_children, category and the
            materialized path.
        """
        with self._index.batch():
            rows = []
            for record in self._index.get_all():
                record_id = record["id"]
                has_children = bool(self._index.get_children(record_id))
                rows.append(
                    TreeRow(
                        id=record_id,
                        parent=record.get("parent"),
                        level=self._index.get_level(record_id),
                        has_children=has_children,
                        category="group" if has_children else "element",
                        path=self._index.get_path(record_id),
                        data={k: v for k, v in record.items() if k not in ("id", "parent")},
                    )
                )
            return rows

    # --- Mutations ---

    def add(self, record: Record | Mapping[str, Any]) -> bool:
        """Add a record. Returns False if its id is missing or already exists."""
        return self._index.add_item(_to_engine_record(record))

    def remove(self, record_id: RecordId) -> bool:
        """Remove a record and all of its descendants. Returns False if unknown."""
        return self._index.remove_item(record_id)

    def update(self, record: Record | Mapping[str, Any]) -> bool:
        """Replace a record by id, moving it if ``parent`` changed.

        Returns False if the id is missing or unknown.
        """
        return self._index.update_item(_to_engine_record(record))

    def move(self, record_id: RecordId, parent: RecordId | None) -> bool:
        """Reparent a record, keeping its payload.

        Args:
            record_id: The record to move.
            parent: New parent id, or None to make it a root.

        Returns:
            True if updated, False if the id is unknown.
        """
        with self._index.batch():
            current = self._index.get_item(record_id)
            if current is None:
                return self._index.update_item({"id": record_id, "parent": parent})
            return self._index.update_item({**current, "parent": parent})

    # --- Inspection ---

    def stats(self) -> IndexStats:
        """Summary counts for the forest."""
        s = self._index.stats()
        return IndexStats(
            record_count=s["num_records"],
            root_count=s["num_roots"],
            dangling_count=s["num_dangling"],
            max_depth=s["max_depth"],
        )

    def validate(self) -> ValidationResult:
        """Check the index for internal consistency.

        Returns:
            A ``ValidationResult`` with ``valid``, ``errors``, ``warnings`` and
            ``cycles`` fields.
        """
        result = self._index.validate()
        return ValidationResult(
            valid=result["valid"],
            errors=result.get("errors", []),
            warnings=result.get("warnings", []),
            cycles=result.get("cycles", []),
        )

    def to_dict(self) -> dict[str, Any]:
        """Export the live records as ``{"records": [...]}``."""
        return self._index.to_dict()
